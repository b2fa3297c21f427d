"""
Auth State Store
================
Domain-keyed persistence for authentication artifacts.

Layout (all files live in one directory, ``auth-states/`` by default)::

    live-session-<domain>-<ms timestamp>.json   Playwright storage_state
    auth-config-<domain>-<ms timestamp>.json    serialized auth config

Several generations may exist for one domain; the highest numeric
timestamp wins on load.  Files are read-shared between crawls; a single
writer per run is assumed, nothing is locked.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config import AuthConfig, parse_auth_config
from ..errors import AuthConfigError

logger = logging.getLogger(__name__)

LIVE_SESSION_PREFIX = "live-session"
AUTH_CONFIG_PREFIX = "auth-config"

_ARTIFACT_RE = re.compile(
    r'^(?P<kind>live-session|auth-config)-(?P<domain>.+)-(?P<ts>\d+)\.json$'
)


@dataclass(frozen=True)
class StoredArtifact:
    kind: str          # "live-session" | "auth-config"
    domain: str
    timestamp: int     # ms since epoch
    path: Path

    @property
    def label(self) -> str:
        return "Live Session" if self.kind == LIVE_SESSION_PREFIX else "Auth Config"


def _now_ms() -> int:
    return int(time.time() * 1000)


class AuthStateStore:
    """Reads and writes auth artifacts under one directory."""

    def __init__(self, state_dir: str = "auth-states"):
        self.state_dir = Path(state_dir)

    # ── Enumeration ──────────────────────────────────────────────

    def list_artifacts(self, domain: Optional[str] = None) -> List[StoredArtifact]:
        """All artifacts (optionally for one domain), newest first."""
        if not self.state_dir.is_dir():
            return []
        found = []
        for path in self.state_dir.iterdir():
            m = _ARTIFACT_RE.match(path.name)
            if not m:
                continue
            if domain and m.group("domain") != domain:
                continue
            found.append(StoredArtifact(
                kind=m.group("kind"),
                domain=m.group("domain"),
                timestamp=int(m.group("ts")),
                path=path,
            ))
        return sorted(found, key=lambda a: a.timestamp, reverse=True)

    def _newest(self, kind: str, domain: str) -> Optional[StoredArtifact]:
        for artifact in self.list_artifacts(domain):
            if artifact.kind == kind:
                return artifact
        return None

    # ── Live sessions ────────────────────────────────────────────

    def new_live_session_path(self, domain: str) -> Path:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        return self.state_dir / f"{LIVE_SESSION_PREFIX}-{domain}-{_now_ms()}.json"

    def latest_live_session(self, domain: str) -> Optional[Path]:
        """Path of the newest live session for *domain*, or None."""
        artifact = self._newest(LIVE_SESSION_PREFIX, domain)
        return artifact.path if artifact else None

    @staticmethod
    def is_usable_session(path: Path) -> bool:
        """A session is usable when it is readable JSON holding at least one cookie."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(f"[SESSION] Corrupt session file {path}: {exc}")
            return False
        cookies = data.get("cookies", []) if isinstance(data, dict) else []
        if not cookies:
            logger.info(f"[SESSION] {Path(path).name} has no cookies — stale")
            return False
        logger.info(f"[SESSION] {Path(path).name}: {len(cookies)} cookies")
        return True

    # ── Auth configs ─────────────────────────────────────────────

    def save_auth_config(self, config: AuthConfig) -> Path:
        if not config.domain:
            raise AuthConfigError("Cannot persist an auth config without a domain")
        self.state_dir.mkdir(parents=True, exist_ok=True)
        ts = _now_ms()
        payload = config.to_dict()
        payload["savedAt"] = ts
        path = self.state_dir / f"{AUTH_CONFIG_PREFIX}-{config.domain}-{ts}.json"
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info(f"[SESSION] Auth config saved: {path}")
        return path

    def latest_auth_config(self, domain: str) -> Optional[AuthConfig]:
        artifact = self._newest(AUTH_CONFIG_PREFIX, domain)
        if artifact is None:
            return None
        try:
            data = json.loads(artifact.path.read_text(encoding="utf-8"))
            return parse_auth_config(data, domain=domain)
        except (OSError, json.JSONDecodeError, AuthConfigError) as exc:
            logger.warning(f"[SESSION] Unreadable auth config {artifact.path.name}: {exc}")
            return None

    # ── Cleanup ──────────────────────────────────────────────────

    def clear(self, domain: Optional[str] = None) -> int:
        """Delete artifacts (all, or one domain's).  Returns the count removed."""
        removed = 0
        for artifact in self.list_artifacts(domain):
            try:
                artifact.path.unlink()
                removed += 1
            except OSError as exc:
                logger.warning(f"[SESSION] Could not delete {artifact.path}: {exc}")
        return removed
