#!/usr/bin/env python3
"""Formats the clock onto the LCD grid and keeps the latest frame."""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Any, Callable, Dict, List, Optional, TextIO

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from modules.base import BaseModule
from modules.lcd import (
    LCD_COLS,
    LCD_ROWS,
    Matrix,
    Placement,
    matrix_lines,
    render_grid,
    render_payload,
)
from modules.time_source import Instant
from utils.env import read_env_bool, read_env_str

LCD_TIMEZONE = read_env_str("LCD_TIMEZONE", "local")
LCD_TERMINAL = read_env_bool("LCD_TERMINAL", True)

# Literal origins: an 8-char time and a 10-char date centred on 16 columns.
TIME_ORIGIN = (0, 4)
DATE_ORIGIN = (1, 3)
SYNC_INDICATOR = "Syncing with server..."

logger = logging.getLogger("lcdclock.display")


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map a config value to a tzinfo; None means the host's local zone."""
    value = (name or "").strip()
    if not value or value.lower() == "local":
        return None
    if value.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        logger.warning({"evt": "timezone_unknown", "tz": value, "error": str(exc)})
        return None


def build_placements(instant: Optional[Instant], tz: Optional[tzinfo] = None) -> Optional[List[Placement]]:
    """Time on row 0 and date on row 1; None while the clock is unsynchronized."""
    if instant is None:
        return None
    moment = instant.to_datetime(tz)
    return [
        Placement(TIME_ORIGIN[0], TIME_ORIGIN[1], moment.strftime("%H:%M:%S")),
        Placement(DATE_ORIGIN[0], DATE_ORIGIN[1], moment.strftime("%d/%m/%Y")),
    ]


@dataclass(frozen=True)
class DisplayFrame:
    synchronized: bool
    instant: Optional[Instant] = None
    matrix: Optional[Matrix] = None
    indicator: Optional[str] = None

    @classmethod
    def syncing(cls) -> "DisplayFrame":
        return cls(synchronized=False, indicator=SYNC_INDICATOR)

    def lines(self) -> List[str]:
        if self.matrix is None:
            return []
        return matrix_lines(self.matrix)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "synchronized": self.synchronized,
            "epoch_ms": self.instant.epoch_ms if self.instant is not None else None,
            "matrix": [list(row) for row in self.matrix] if self.matrix is not None else None,
            "lines": self.lines(),
            "indicator": self.indicator,
        }


FrameSink = Callable[[DisplayFrame], None]


class TerminalDisplay:
    """Draw frames as a boxed 16x2 panel on a text stream."""

    def __init__(self, stream: Optional[TextIO] = None, *, cols: int = LCD_COLS) -> None:
        self._stream = stream or sys.stdout
        self._cols = cols

    def __call__(self, frame: DisplayFrame) -> None:
        if frame.synchronized:
            border = "+" + "-" * self._cols + "+"
            text = "\n".join([border, *(f"|{line}|" for line in frame.lines()), border])
        else:
            text = frame.indicator or SYNC_INDICATOR
        # home + clear so the panel redraws in place
        prefix = "\x1b[H\x1b[2J" if self._stream.isatty() else ""
        self._stream.write(prefix + text + "\n")
        self._stream.flush()


class DisplayModule(BaseModule):
    """Owns the simulated LCD: one refresh per clock tick."""

    name = "lcd"

    def __init__(
        self,
        *,
        tz: Optional[tzinfo] = None,
        sinks: Optional[List[FrameSink]] = None,
        rows: int = LCD_ROWS,
        cols: int = LCD_COLS,
    ) -> None:
        super().__init__()
        self.tz = tz
        self.rows = rows
        self.cols = cols
        self._sinks: List[FrameSink] = list(sinks or [])
        self._frame_lock = threading.Lock()
        self._frame = DisplayFrame.syncing()

    def build_command_map(self):
        return {
            "lcd.refresh": self._cmd_refresh,
            "lcd.frame": self._cmd_frame,
            "lcd.render": self._cmd_render,
        }

    @property
    def frame(self) -> DisplayFrame:
        with self._frame_lock:
            return self._frame

    def refresh(self, instant: Optional[Instant]) -> DisplayFrame:
        placements = build_placements(instant, self.tz)
        if placements is None:
            frame = DisplayFrame.syncing()
        else:
            frame = DisplayFrame(
                synchronized=True,
                instant=instant,
                matrix=render_grid(placements, self.rows, self.cols),
            )
        with self._frame_lock:
            self._frame = frame
        for sink in list(self._sinks):
            try:
                sink(frame)
            except Exception as exc:
                logger.warning({"evt": "display_sink_error", "sink": repr(sink), "error": str(exc)})
        if self.core is not None:
            self.publish("lcd_frame", frame.to_dict())
        return frame

    # Commands ------------------------------------------------------------
    def _cmd_refresh(self, payload: Optional[Dict[str, Any]] = None):
        raw = (payload or {}).get("epoch_ms")
        instant = Instant(int(raw)) if isinstance(raw, (int, float)) and not isinstance(raw, bool) else None
        return self.refresh(instant).to_dict()

    def _cmd_frame(self, payload: Optional[Dict[str, Any]] = None):
        return self.frame.to_dict()

    def _cmd_render(self, payload: Optional[Dict[str, Any]] = None):
        return render_payload(payload or {})


def default_sinks() -> List[FrameSink]:
    return [TerminalDisplay()] if LCD_TERMINAL else []


__all__ = [
    "DATE_ORIGIN",
    "DisplayFrame",
    "DisplayModule",
    "SYNC_INDICATOR",
    "TIME_ORIGIN",
    "TerminalDisplay",
    "build_placements",
    "default_sinks",
    "resolve_timezone",
]
