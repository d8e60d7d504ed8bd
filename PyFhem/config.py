from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any
from urllib.parse import SplitResult, urlsplit

from PyFhem.const import DEFAULT_RETRY_INTERVALS, DEFAULT_TIMEOUT
from PyFhem.exceptions import ErrorKind, FhemConfigurationError


@dataclass(frozen=True)
class TransportOptions:
    """Per-request transport settings. ``timeout_sec`` is in seconds, None waits forever."""

    timeout_sec: float | None = DEFAULT_TIMEOUT
    verify: bool = False
    keep_alive: bool = True
    headers: Mapping[str, str] = field(default_factory=dict)


def _default_retry_intervals() -> Mapping[ErrorKind, int]:
    return MappingProxyType({ErrorKind(kind): ms for kind, ms in DEFAULT_RETRY_INTERVALS.items()})


@dataclass(frozen=True)
class FhemConfig:
    url: str
    username: str | None = None
    password: str | None = None
    transport: TransportOptions = field(default_factory=TransportOptions)
    retry_intervals: Mapping[ErrorKind, int] = field(default_factory=_default_retry_intervals)
    expiration_period: int = 0

    def __post_init__(self) -> None:
        validate_url(self.url)

    @classmethod
    def create(
        cls,
        url: str,
        username: str | None = None,
        password: str | None = None,
        transport: TransportOptions | None = None,
        retry_intervals: Iterable[tuple[ErrorKind | str, int]] | None = None,
        expiration_period: int = 0,
    ) -> FhemConfig:
        """Build a config, merging ``retry_intervals`` pairs over the defaults."""
        return cls(
            url=url,
            username=username,
            password=password,
            transport=transport or TransportOptions(),
            retry_intervals=merge_retry_intervals(retry_intervals),
            expiration_period=max(0, int(expiration_period)),
        )

    @property
    def credentials(self) -> tuple[str, str] | None:
        if self.username and self.password:
            return self.username, self.password
        return None


def validate_url(url: str) -> SplitResult:
    try:
        parts = urlsplit(url)
        _ = parts.port
    except (TypeError, ValueError) as exc:
        raise FhemConfigurationError(f"'{url}' is not a valid URL.", ErrorKind.INVALID_URL) from exc
    if parts.scheme not in {"http", "https"} or not parts.hostname:
        raise FhemConfigurationError(f"'{url}' is not a valid URL.", ErrorKind.INVALID_URL)
    return parts


def merge_retry_intervals(
    overrides: Iterable[tuple[ErrorKind | str, int]] | None,
) -> Mapping[ErrorKind, int]:
    merged = dict(_default_retry_intervals())
    for kind, interval in overrides or ():
        try:
            merged[ErrorKind(kind)] = int(interval)
        except ValueError as exc:
            raise ValueError(f"Unknown error kind in retry intervals: {kind!r}") from exc
    return MappingProxyType(merged)


def load_fhem_config() -> FhemConfig | None:
    url = str(os.getenv("FHEM_URL") or "").strip()
    if not url:
        return None

    transport = TransportOptions(
        timeout_sec=_as_timeout(os.getenv("FHEM_TIMEOUT_SEC")),
        verify=_as_bool(os.getenv("FHEM_VERIFY_TLS"), False),
        keep_alive=_as_bool(os.getenv("FHEM_KEEP_ALIVE"), True),
    )
    return FhemConfig.create(
        url=url,
        username=os.getenv("FHEM_USERNAME") or None,
        password=os.getenv("FHEM_PASSWORD") or None,
        transport=transport,
        retry_intervals=_as_pairs(os.getenv("FHEM_RETRY_INTERVALS")),
        expiration_period=_as_int(os.getenv("FHEM_EXPIRATION_PERIOD_MS"), 0, minimum=0),
    )


def _as_bool(raw: Any, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _as_int(raw: Any, default: int, *, minimum: int | None = None) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = default
    if minimum is not None:
        return max(minimum, value)
    return value


def _as_timeout(raw: Any) -> float | None:
    if raw is None or str(raw).strip() == "":
        return DEFAULT_TIMEOUT
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT
    return value if value > 0 else None


def _as_pairs(raw: Any) -> list[tuple[str, int]]:
    if raw is None:
        return []
    pairs: list[tuple[str, int]] = []
    for item in str(raw).split(","):
        kind, sep, interval = item.partition("=")
        if not sep or not kind.strip():
            continue
        pairs.append((kind.strip(), _as_int(interval.strip(), 0)))
    return pairs
