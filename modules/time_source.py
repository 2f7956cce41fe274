#!/usr/bin/env python3
"""Authoritative time: the HTTP client the clock trusts and the payload it serves."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Mapping, Optional, Protocol

import requests

from utils.env import read_env_float, read_env_str

NTP_URL = read_env_str("NTP_URL", "http://127.0.0.1:5000/api/ntp")
NTP_TIMEOUT = read_env_float("NTP_TIMEOUT", 5.0)

logger = logging.getLogger("lcdclock.time_source")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SyncUnavailable(Exception):
    """The time source could not produce an instant."""


@dataclass(frozen=True, order=True)
class Instant:
    """Absolute point in time with millisecond resolution."""

    epoch_ms: int

    def plus(self, millis: int) -> "Instant":
        return Instant(self.epoch_ms + int(millis))

    def to_datetime(self, tz: Optional[tzinfo] = None) -> datetime:
        moment = _EPOCH + timedelta(milliseconds=self.epoch_ms)
        if tz is None:
            return moment.astimezone()
        return moment.astimezone(tz)

    def isoformat(self) -> str:
        moment = self.to_datetime(timezone.utc)
        return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{self.epoch_ms % 1000:03d}Z"

    @classmethod
    def from_datetime(cls, moment: datetime) -> "Instant":
        if moment.tzinfo is None:
            moment = moment.astimezone()
        return cls((moment - _EPOCH) // timedelta(milliseconds=1))


class TimeSource(Protocol):
    """Anything able to hand out the current authoritative instant."""

    def fetch(self) -> Instant: ...


def instant_from_payload(payload: Any) -> Instant:
    """Pull the ``unix`` epoch-millisecond field out of a time payload."""
    if not isinstance(payload, Mapping):
        raise SyncUnavailable("time payload is not an object")
    raw = payload.get("unix")
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise SyncUnavailable("time payload has no numeric 'unix' field")
    if isinstance(raw, float) and not math.isfinite(raw):
        raise SyncUnavailable("time payload 'unix' is not finite")
    instant = Instant(int(raw))
    try:
        instant.to_datetime(timezone.utc)
    except (OverflowError, ValueError) as exc:
        raise SyncUnavailable("time payload 'unix' is out of range") from exc
    return instant


class HttpTimeSource:
    """Fetch the instant from a ``/api/ntp`` style endpoint."""

    def __init__(
        self,
        url: str = NTP_URL,
        *,
        timeout: float = NTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self) -> Instant:
        try:
            resp = self._session.get(
                self.url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        except requests.RequestException as exc:
            raise SyncUnavailable(f"time request failed: {exc}") from exc

        if resp.status_code != 200:
            raise SyncUnavailable(f"time source error: {resp.status_code} {resp.text[:200]}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise SyncUnavailable("time source returned invalid JSON") from exc

        instant = instant_from_payload(payload)
        logger.debug({"evt": "time_fetched", "url": self.url, "unix": instant.epoch_ms})
        return instant

    def close(self) -> None:
        self._session.close()


def build_time_payload(now: Optional[datetime] = None) -> dict:
    """Describe ``now`` as ``{iso, unix, timezoneOffset}``.

    ``timezoneOffset`` is in minutes, UTC minus local time, so zones east of
    Greenwich are negative.
    """
    if now is None:
        now = datetime.fromtimestamp(time.time()).astimezone()
    elif now.tzinfo is None:
        now = now.astimezone()
    instant = Instant.from_datetime(now)
    offset = now.utcoffset()
    offset_minutes = int(offset.total_seconds() // 60) if offset is not None else 0
    return {
        "iso": instant.isoformat(),
        "unix": instant.epoch_ms,
        "timezoneOffset": -offset_minutes,
    }


__all__ = [
    "HttpTimeSource",
    "Instant",
    "SyncUnavailable",
    "TimeSource",
    "build_time_payload",
    "instant_from_payload",
]
