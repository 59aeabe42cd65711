"""Narrow capability interfaces the authentication core depends on.

The orchestration logic never touches randomness, wall-clock time or page
navigation directly. It goes through the contracts below so that tests can
run the whole flow deterministically and in memory.

``KeyValueStore`` lives in :mod:`aws_oidc_console.auth.session` next to its
implementations.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Protocol, runtime_checkable
from urllib.parse import urlsplit, urlunsplit

from aws_oidc_console.auth.errors import CryptoUnavailableError

logger = logging.getLogger(__name__)


@runtime_checkable
class Clock(Protocol):
    """Callable returning *milliseconds* since the UNIX epoch."""

    def __call__(self) -> int: ...


def system_clock() -> int:
    """Default clock backed by ``time.time()``."""
    return int(time.time() * 1000)


@runtime_checkable
class RandomSource(Protocol):
    """Source of cryptographically secure random bytes."""

    def token_bytes(self, nbytes: int) -> bytes: ...


class SystemRandomSource:
    """RandomSource backed by the operating system CSPRNG."""

    def token_bytes(self, nbytes: int) -> bytes:
        try:
            return secrets.token_bytes(nbytes)
        except NotImplementedError as e:
            raise CryptoUnavailableError() from e


class FixedRandomSource:
    """Deterministic RandomSource that replays the given byte blocks in order."""

    def __init__(self, *blocks: bytes):
        self._blocks = list(blocks)

    def token_bytes(self, nbytes: int) -> bytes:
        if not self._blocks:
            raise CryptoUnavailableError("Fixed random source exhausted")
        block = self._blocks.pop(0)
        return (block * (nbytes // max(len(block), 1) + 1))[:nbytes]


@runtime_checkable
class Navigator(Protocol):
    """Page navigation as seen by the OAuth2 flow."""

    def current_url(self) -> str: ...

    def assign(self, url: str) -> None:
        """Navigate the whole page to *url*. Real implementations do not return."""

    def replace_url(self, url: str) -> None:
        """Rewrite the current URL without navigating (history replace)."""

    def reload(self) -> None:
        """Reload the local application state."""


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` of *url*."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, "", "", ""))


def strip_query(url: str) -> str:
    """Return *url* without its query string and fragment."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


class RecordingNavigator:
    """In-memory Navigator that records every navigation instead of performing it."""

    def __init__(self, url: str = "http://localhost:8000/"):
        self.url = url
        self.assigned: list[str] = []
        self.replaced: list[str] = []
        self.reloads = 0

    def current_url(self) -> str:
        return self.url

    def assign(self, url: str) -> None:
        self.assigned.append(url)
        self.url = url

    def replace_url(self, url: str) -> None:
        self.replaced.append(url)
        self.url = url

    def reload(self) -> None:
        self.reloads += 1

    @property
    def last_assigned(self) -> str | None:
        return self.assigned[-1] if self.assigned else None


class NavigationRequested(Exception):
    """Raised by :class:`RedirectNavigator` to unwind the request into a redirect."""

    def __init__(self, url: str):
        super().__init__(url)
        self.url = url


class RedirectNavigator:
    """Navigator for the web app: navigation aborts the request with a redirect.

    ``assign`` and ``reload`` never return, mirroring a browser page that is
    being replaced. The exception is turned into a 302 by the app.
    """

    def __init__(self, url: str, home: str = "/"):
        self.url = url
        self.home = home

    def current_url(self) -> str:
        return self.url

    def assign(self, url: str) -> None:
        raise NavigationRequested(url)

    def replace_url(self, url: str) -> None:
        self.url = url

    def reload(self) -> None:
        raise NavigationRequested(self.home)
