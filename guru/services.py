"""
Guru — External Services
Thin HTTP clients for the chart service (Dasha periods) and the
advisory service (AI-written nudges). Both live behind the
/api/* Netlify functions.

Network and status failures surface as ServiceError; callers decide
how soft to fail.
"""
import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Optional

import pytz

from guru.periods import Period, parse_periods
from guru.profiles import birth_data_from

logger = logging.getLogger("guru.services")

USER_AGENT = "Guru/0.3"

TRIGGER_TRANSIT_ALERT = "transit_alert"
TRIGGER_RELATIONAL = "relational_management"


class ServiceError(Exception):
    """An external call failed or returned a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def _post_json(url: str, payload: dict, timeout: float):
    body = json.dumps(payload, default=str).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=body,
        headers={
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        },
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        raise ServiceError(f"{url} returned HTTP {e.code}", status=e.code) from e
    except (urllib.error.URLError, OSError) as e:
        raise ServiceError(f"{url} unreachable: {e}") from e

    try:
        return json.loads(raw) if raw else None
    except json.JSONDecodeError as e:
        raise ServiceError(f"{url} returned invalid JSON") from e


class _HttpService:
    def __init__(self, api_base: str, timeout: float = 30):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    async def _post(self, path: str, payload: dict):
        url = f"{self.api_base}{path}"
        # Run in thread to not block
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: _post_json(url, payload, self.timeout))


class ChartService(_HttpService):
    """Fetches the Vimshottari Dasha timeline for a birth chart."""

    PATH = "/api/kundali"

    def __init__(self, api_base: str, timeout: float = 30, tz=pytz.utc):
        super().__init__(api_base, timeout)
        self.tz = tz

    async def get_periods(self, birth_data: dict) -> list[Period]:
        data = await self._post(self.PATH, {"birthData": birth_data, "chartType": "DASHAS"})
        if isinstance(data, dict):
            data = data.get("periods") or []
        return parse_periods(data or [], self.tz)


class AdvisoryService(_HttpService):
    """Asks the Guru backend for a short, personalised nudge."""

    PATH = "/api/proactive-nudge"

    async def request_nudge(self, state, trigger_type: str) -> Optional[dict]:
        """Return ``{"title", "message"}`` or None when the reply is empty."""
        payload = {
            "birthData": birth_data_from(state.profile),
            "atmanData": state.atman,
            "triggerType": trigger_type,
        }
        data = await self._post(self.PATH, payload)
        if not isinstance(data, dict):
            return None
        title = (data.get("title") or "").strip()
        message = (data.get("message") or "").strip()
        if not title or not message:
            logger.debug("Advisory reply for %s had no content", trigger_type)
            return None
        return {"title": title, "message": message}
