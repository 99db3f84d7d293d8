# pvs6_logger/services/notifiers/healthchecks.py

from __future__ import annotations

import urllib.error
import urllib.parse
import urllib.request
from typing import Callable, Optional

from pvs6_logger.config import HealthchecksConfig


class HealthchecksNotifier:
    """Reports each device poll cycle to a Healthchecks.io check."""

    def __init__(self, cfg: HealthchecksConfig, log, opener: Optional[Callable] = None):
        self.cfg = cfg
        self.log = log
        self._opener = opener or urllib.request.urlopen
        self._base_url = (cfg.ping_url or "").rstrip("/")
        self.enabled = bool(cfg.enabled and self._base_url)

    # ------------------------------------------------------------------
    def ping_url(self, suffix: str = "", message: str = "") -> str:
        url = f"{self._base_url}{suffix}"
        parsed = list(urllib.parse.urlparse(url))
        query = urllib.parse.parse_qs(parsed[4])
        if message:
            query["msg"] = [message[:200]]
        parsed[4] = urllib.parse.urlencode(query, doseq=True)
        return urllib.parse.urlunparse(parsed)

    def _hit(self, suffix: str, message: str) -> bool:
        if not self.enabled:
            self.log.debug("[Healthchecks] Disabled; skipping ping %s", suffix or "/")
            return False
        try:
            self._opener(self.ping_url(suffix, message), timeout=10)
        except (urllib.error.URLError, OSError) as exc:
            self.log.warning("[Healthchecks] Ping failed: %s", exc)
            return False
        self.log.debug("[Healthchecks] Ping sent to %s", suffix or "/")
        return True

    # ------------------------------------------------------------------
    def cycle_succeeded(self, message: str = "") -> bool:
        return self._hit("", message)

    def cycle_failed(self, message: str = "") -> bool:
        return self._hit("/fail", message)
