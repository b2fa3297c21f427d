"""
Client for the dashboard backend's persisted auth configurations.

    GET {base_url}/api/auth/configs?domain=<domain>
    → {"success": true, "data": [AuthConfig, ...]}

The first entry whose ``domain`` matches exactly is preferred; otherwise
the first entry is used.  Any transport or payload problem is logged and
reported as "no config" so a flaky backend never blocks a crawl.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import requests

from .config import AuthConfig, parse_auth_config
from ..errors import AuthConfigError

logger = logging.getLogger(__name__)


def pick_config(entries: List[Dict[str, Any]], domain: str) -> Optional[Dict[str, Any]]:
    if not entries or not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and entry.get("domain") == domain:
            return entry
    first = entries[0]
    return first if isinstance(first, dict) else None


class AuthConfigClient:

    def __init__(self, base_url: str, *, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get(self, domain: str) -> Dict[str, Any]:
        resp = self._session.get(
            f"{self.base_url}/api/auth/configs",
            params={"domain": domain},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()

    async def fetch(self, domain: str) -> Optional[AuthConfig]:
        loop = asyncio.get_running_loop()
        try:
            payload = await loop.run_in_executor(None, self._get, domain)
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"[BACKEND] Auth config lookup failed for {domain}: {e}")
            return None

        if not isinstance(payload, dict) or not payload.get("success"):
            logger.info(f"[BACKEND] No auth config for {domain}")
            return None

        entry = pick_config(payload.get("data") or [], domain)
        if entry is None:
            return None
        try:
            config = parse_auth_config(entry, domain=domain)
        except AuthConfigError as e:
            logger.warning(f"[BACKEND] Ignoring malformed auth config for {domain}: {e}")
            return None
        logger.info(f"[BACKEND] Using {config.auth_type} auth config for {domain}")
        return config
