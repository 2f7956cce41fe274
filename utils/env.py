#!/usr/bin/env python3
"""Tolerant environment-variable readers used for module-level settings."""

from __future__ import annotations

import os
from typing import Optional

_TRUE_VALUES = ("1", "true", "on", "yes")


def read_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    return value or default


def read_env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return default


def read_env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(str(raw).strip())
    except (TypeError, ValueError):
        return default


def read_env_bool(name: str, default: bool) -> bool:
    raw: Optional[str] = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES
