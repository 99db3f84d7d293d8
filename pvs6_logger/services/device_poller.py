# pvs6_logger/services/device_poller.py

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

import requests

from pvs6_logger.config import PVS6Config


class PVS6Poller:
    """
    Fetches the PVS6 DeviceList over the installer port.

    One ``requests.get`` per poll, never a Session: the PVS6 must not be left
    holding an installer-port connection between polls.
    """

    def __init__(self, cfg: PVS6Config, log, get: Optional[Callable[..., requests.Response]] = None):
        self.cfg = cfg
        self.log = log
        self._get = get or requests.get

    def poll(self) -> Optional[str]:
        try:
            resp = self._get(
                self.cfg.url,
                timeout=self.cfg.timeout,
                verify=self.cfg.verify_tls,
            )
        except requests.RequestException as exc:
            self.log.warning("PVS6 did not respond: %s", exc)
            return None

        if resp.status_code != 200:
            self.log.error("PVS6 returned HTTP %s", resp.status_code)
            return None

        body = resp.text
        if not body or not body.strip():
            self.log.error("PVS6 response code OK, but body was empty")
            return None

        self.log.info("PVS6 response received (%d bytes)", len(body))
        return body


class FilePoller:
    """Replays a saved DeviceList response instead of polling the PVS6."""

    def __init__(self, path: str, log):
        self.path = Path(path).expanduser()
        self.log = log

    def poll(self) -> Optional[str]:
        try:
            body = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            self.log.error("Could not read payload file %s: %s", self.path, exc)
            return None
        self.log.info("Loaded PVS6 payload from %s (%d bytes)", self.path, len(body))
        return body
