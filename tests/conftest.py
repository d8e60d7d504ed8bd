"""Fakes for the HTTP session and the clock."""

from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest
from requests.structures import CaseInsensitiveDict

from PyFhem import http as fhem_http
from PyFhem.const import CSRF_HEADER


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        headers: dict[str, str] | None = None,
        reason: str = "OK",
        chunks: list[bytes] | None = None,
        error: BaseException | None = None,
        on_chunk: Callable[[], None] | None = None,
        raw: Any = None,
        encoding: str | None = "utf-8",
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.encoding = encoding
        self.raw = raw
        self.closed = False
        self._content_consumed = False
        self._chunks = chunks if chunks is not None else [text.encode("utf-8")]
        self._error = error
        self._on_chunk = on_chunk

    def iter_content(self, chunk_size: int = 1):
        _ = chunk_size
        for chunk in self._chunks:
            if self._on_chunk is not None:
                self._on_chunk()
            yield chunk
        if self._error is not None:
            raise self._error
        self._content_consumed = True

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, *outcomes: FakeResponse | BaseException) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected request #{len(self.calls)}: {kwargs.get('params')}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        for hook in kwargs.get("hooks", {}).get("response", []):
            hook(outcome)
        return outcome

    def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def token_probe(token: str | None = "csrf_1") -> FakeResponse:
    return FakeResponse(200, "", headers={CSRF_HEADER: token} if token else {})


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    fake = FakeClock()
    monkeypatch.setattr(fhem_http, "time", fake)
    return fake


def pooled_connection(local_port: int = 54321) -> SimpleNamespace:
    """Stand-in for urllib3's ``response.raw`` on a kept-alive socket."""
    sock = SimpleNamespace(getsockname=lambda: ("127.0.0.1", local_port))
    return SimpleNamespace(connection=SimpleNamespace(sock=sock), version=11)
