import logging
import sys


def setup_logging(debug: bool = False, quiet: bool = False):
    """
    Configure the root logger for tests and one-off scripts.
    """
    level = logging.DEBUG if debug else logging.INFO
    if quiet:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    return logging.getLogger("pvs6")


def get_logger(name: str) -> logging.Logger:
    """Child of the ``pvs6`` application logger unless already qualified."""
    if name == "pvs6" or name.startswith("pvs6."):
        return logging.getLogger(name)
    return logging.getLogger(f"pvs6.{name}")
