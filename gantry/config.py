# gantry/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Dict, Mapping, Optional

from .util.dates import resolve_tz

GRANULARITIES = ("day", "week", "month")

DEFAULT_CELL_WIDTHS: Dict[str, float] = {"day": 30.0, "week": 40.0, "month": 100.0}


@dataclass(frozen=True)
class EngineConfig:
    """Knobs the hosting view passes into the engine.

    base_cell_widths: logical width of one timeline cell per granularity
        before auto-fit stretching.
    inflight_pause_s: how long a commit that cascaded through dependencies
        keeps its "in-flight" indication up.
    tz: timezone used to decide what "today" is for open-ended actual ranges.
    """

    base_cell_widths: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_CELL_WIDTHS))
    inflight_pause_s: float = 0.6
    tz: str = "local"
    default_granularity: str = "week"

    def cell_width_for(self, granularity: str) -> float:
        w = self.base_cell_widths.get(granularity)
        if w is None or w <= 0:
            return DEFAULT_CELL_WIDTHS.get(granularity, DEFAULT_CELL_WIDTHS["week"])
        return float(w)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "EngineConfig":
        """Build a config from GANTRY_* environment variables, then apply overrides.

        GANTRY_TZ            timezone name (default "local")
        GANTRY_INFLIGHT_MS   in-flight pause in milliseconds (default 600)
        GANTRY_GRANULARITY   day|week|month (default "week")
        """
        env = os.environ if environ is None else environ
        cfg = cls()

        tz = (env.get("GANTRY_TZ") or "").strip()
        if tz:
            cfg = replace(cfg, tz=tz)

        ms = (env.get("GANTRY_INFLIGHT_MS") or "").strip()
        if ms:
            try:
                cfg = replace(cfg, inflight_pause_s=max(0.0, int(ms) / 1000.0))
            except ValueError as ex:
                raise ValueError(f"GANTRY_INFLIGHT_MS must be an integer; got {ms!r}") from ex

        gran = (env.get("GANTRY_GRANULARITY") or "").strip().lower()
        if gran:
            cfg = replace(cfg, default_granularity=gran)

        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            cfg = replace(cfg, **overrides)
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.default_granularity not in GRANULARITIES:
            raise ValueError(f"granularity must be one of {', '.join(GRANULARITIES)}; got {self.default_granularity!r}")
        if self.inflight_pause_s < 0:
            raise ValueError("inflight_pause_s must be >= 0")
        resolve_tz(self.tz)


DEFAULT_CONFIG = EngineConfig()

__all__ = ["DEFAULT_CELL_WIDTHS", "DEFAULT_CONFIG", "EngineConfig", "GRANULARITIES"]
