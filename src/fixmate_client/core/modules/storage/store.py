"""Replicated credential store.

The bearer credential lives under two key names in each of two scopes, and
the cached profile under a parallel pair of keys. Writes and clears always
touch every location; a failed write restores the previous values.
"""

import json
from typing import Any

import structlog

from fixmate_client.core.modules.storage.storage import KeyValueStorage

logger = structlog.get_logger(__name__)

CREDENTIAL_KEYS = ("fixmate_auth_token", "authToken")
PROFILE_KEYS = ("fixmate_user", "user")
REFRESH_TOKEN_KEY = "fixmate_refresh_token"


class CredentialStore:
    """Credential and profile replicas across a persistent and a tab scope."""

    def __init__(self, persistent: KeyValueStorage, tab: KeyValueStorage) -> None:
        self._scopes = (persistent, tab)
        self._tab = tab
        self._persistent = persistent

    @property
    def persistent(self) -> KeyValueStorage:
        return self._persistent

    @property
    def tab(self) -> KeyValueStorage:
        return self._tab

    def _locations(self, keys: tuple[str, ...]) -> list[tuple[KeyValueStorage, str]]:
        return [(scope, key) for scope in self._scopes for key in keys]

    def _read(self, keys: tuple[str, ...]) -> str | None:
        # Tab scope holds the current session, persistent scope survives restarts
        for scope in (self._tab, self._persistent):
            for key in keys:
                value = scope.get(key)
                if value:
                    return value
        return None

    def _write_all(self, keys: tuple[str, ...], value: str | None) -> None:
        locations = self._locations(keys)
        snapshot = [(scope, key, scope.get(key)) for scope, key in locations]
        try:
            for scope, key in locations:
                if value is None:
                    scope.remove(key)
                else:
                    scope.set(key, value)
        except Exception:
            logger.exception("store_write_failed", keys=list(keys))
            for scope, key, previous in snapshot:
                if previous is None:
                    scope.remove(key)
                else:
                    scope.set(key, previous)
            raise

    def get_credential(self) -> str | None:
        return self._read(CREDENTIAL_KEYS)

    def set_credential(self, token: str) -> None:
        self._write_all(CREDENTIAL_KEYS, token)

    def get_profile(self) -> dict[str, Any] | None:
        raw = self._read(PROFILE_KEYS)
        if raw is None:
            return None
        try:
            profile = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("profile_unreadable")
            return None
        return profile if isinstance(profile, dict) else None

    def set_profile(self, profile: dict[str, Any]) -> None:
        self._write_all(PROFILE_KEYS, json.dumps(profile))

    def get_refresh_token(self) -> str | None:
        return self._read((REFRESH_TOKEN_KEY,))

    def set_refresh_token(self, token: str) -> None:
        self._write_all((REFRESH_TOKEN_KEY,), token)

    def clear(self) -> None:
        """Remove credential, profile and refresh token from every location."""
        self._write_all(CREDENTIAL_KEYS, None)
        self._write_all(PROFILE_KEYS, None)
        self._write_all((REFRESH_TOKEN_KEY,), None)
        # Tab scope is dropped wholesale on sign-out
        self._tab.clear()
