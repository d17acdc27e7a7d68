"""Credentials and submission bookkeeping shared by every backend call."""
from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager

from .errors import DuplicateSubmissionError, SessionExpiredError

_IDEMPOTENCY_NAMESPACE = uuid.UUID("6f1c1a52-8c7e-4bb3-9a53-1d0f3f0c2b7e")


class SessionContext:
    """The one place a bearer token is read from."""

    def __init__(self, token: str | None = None):
        self._token = token

    def token(self) -> str:
        if not self._token:
            raise SessionExpiredError("not logged in", status_code=401)
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token()}"}


def idempotency_key(method: str, path: str, body: dict | list | None = None) -> str:
    """Stable key for one logical mutation; a retry of the same call reuses it."""
    canonical = json.dumps(body, sort_keys=True, default=str) if body is not None else ""
    return str(uuid.uuid5(_IDEMPOTENCY_NAMESPACE, f"{method.upper()} {path} {canonical}"))


class InFlightGuard:
    """Refuses a mutation while an identical one has not finished yet."""

    def __init__(self):
        self._in_flight: set[str] = set()

    def busy(self, key: str) -> bool:
        return key in self._in_flight

    @asynccontextmanager
    async def hold(self, key: str):
        if self.busy(key):
            raise DuplicateSubmissionError("request already in progress", status_code=409)
        self._in_flight.add(key)
        try:
            yield key
        finally:
            self._in_flight.discard(key)
