# floodpoints/params.py
"""
Run parameters for the flood point extractor.

Defaults come from config.py; the CLI passes overrides. Everything is checked
in validate() so a bad run stops before Earth Engine (or the local catalog)
is touched.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date

import pyproj

import config
from floodpoints.errors import ConfigError


def parse_date(value, name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ConfigError(f"{name}: malformed date {value!r} (expected YYYY-MM-DD)") from None


@dataclass(frozen=True)
class TimeWindow:
    """Half-open date range [start, end)."""
    start: date
    end: date

    @classmethod
    def parse(cls, start, end, name: str = "window") -> "TimeWindow":
        s = parse_date(start, f"{name} start")
        e = parse_date(end, f"{name} end")
        if e <= s:
            raise ConfigError(f"{name}: end {e} must be after start {s}")
        return cls(s, e)

    def contains(self, d: date) -> bool:
        return self.start <= d < self.end

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.start < other.end and other.start < self.end

    def as_strings(self) -> tuple[str, str]:
        return self.start.isoformat(), self.end.isoformat()

    def __str__(self):
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class RunParams:
    pre: TimeWindow
    post: TimeWindow
    threshold: float = config.VV_DIFF_THRESHOLD
    points_per_class: int = config.POINTS_PER_CLASS
    seed: int = config.SEED
    scale: float = config.SCALE
    crs: str = config.CRS
    folder: str = config.EXPORT_FOLDER
    file_name: str = config.EXPORT_FILE_NAME
    instrument_mode: str = config.INSTRUMENT_MODE
    orbit_pass: str = config.ORBIT_PASS
    polarization: str = config.POLARIZATION
    class_values: tuple = field(default=(0, 1))

    @classmethod
    def from_config(cls, **overrides) -> "RunParams":
        """Build from config.py defaults; None-valued overrides are ignored.

        Accepts the window bounds as pre_start / pre_end / post_start /
        post_end so argparse namespaces can be passed through as-is.
        """
        overrides = {k: v for k, v in overrides.items() if v is not None}
        pre = TimeWindow.parse(
            overrides.pop("pre_start", config.PRE_START),
            overrides.pop("pre_end", config.PRE_END),
            "pre",
        )
        post = TimeWindow.parse(
            overrides.pop("post_start", config.POST_START),
            overrides.pop("post_end", config.POST_END),
            "post",
        )
        known = set(cls.__dataclass_fields__)
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        params = cls(pre=pre, post=post, **overrides)
        params.validate()
        return params

    def validate(self) -> "RunParams":
        if not isinstance(self.pre, TimeWindow) or not isinstance(self.post, TimeWindow):
            raise ConfigError("pre/post must be TimeWindow instances")
        for name, w in (("pre", self.pre), ("post", self.post)):
            if w.end <= w.start:
                raise ConfigError(f"{name}: end {w.end} must be after start {w.start}")

        if isinstance(self.threshold, bool) or not isinstance(self.threshold, (int, float)):
            raise ConfigError(f"threshold must be numeric, got {self.threshold!r}")
        if not math.isfinite(self.threshold):
            raise ConfigError(f"threshold must be finite, got {self.threshold!r}")

        if isinstance(self.points_per_class, bool) or not isinstance(self.points_per_class, int):
            raise ConfigError(f"pointsPerClass must be an integer, got {self.points_per_class!r}")
        if self.points_per_class < 0:
            raise ConfigError(f"pointsPerClass must be >= 0, got {self.points_per_class}")

        if isinstance(self.seed, bool) or not isinstance(self.seed, int):
            raise ConfigError(f"seed must be an integer, got {self.seed!r}")

        if isinstance(self.scale, bool) or not isinstance(self.scale, (int, float)) or not self.scale > 0:
            raise ConfigError(f"scale must be a positive number of metres, got {self.scale!r}")

        try:
            pyproj.CRS.from_user_input(self.crs)
        except pyproj.exceptions.CRSError:
            raise ConfigError(f"Unknown CRS: {self.crs!r}") from None

        if not str(self.folder).strip():
            raise ConfigError("export folder must not be empty")
        if not str(self.file_name).strip():
            raise ConfigError("export file name must not be empty")
        if not self.class_values:
            raise ConfigError("class_values must not be empty")
        return self

    def windows_overlap(self) -> bool:
        return self.pre.overlaps(self.post)

    def with_overrides(self, **changes) -> "RunParams":
        return replace(self, **changes).validate()

    def describe(self) -> dict:
        """camelCase view of the run parameters, for the console summary."""
        return {
            "preStart": self.pre.start.isoformat(),
            "preEnd": self.pre.end.isoformat(),
            "postStart": self.post.start.isoformat(),
            "postEnd": self.post.end.isoformat(),
            "threshold": self.threshold,
            "pointsPerClass": self.points_per_class,
            "seed": self.seed,
            "scale": self.scale,
            "crs": self.crs,
            "folder": self.folder,
            "fileName": self.file_name,
        }
