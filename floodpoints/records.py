# floodpoints/records.py
"""Fixed-schema sample records and their tabular form."""
from __future__ import annotations

from collections import Counter
from typing import Iterable, NamedTuple

import pandas as pd

import config

EXPORT_COLUMNS = list(config.EXPORT_COLUMNS)
DTYPES = {"sample_id": "string", "longitude": "float64", "latitude": "float64", "flood": "uint8"}


class SamplePoint(NamedTuple):
    sample_id: str
    longitude: float
    latitude: float
    flood: int


def class_histogram(points: Iterable[SamplePoint]) -> dict[str, int]:
    """Per-class counts keyed by the class value as a string (same shape as aggregate_histogram)."""
    counts = Counter(int(p.flood) for p in points)
    return {str(k): counts[k] for k in sorted(counts)}


def to_frame(points: Iterable[SamplePoint], columns=None) -> pd.DataFrame:
    columns = list(columns or EXPORT_COLUMNS)
    df = pd.DataFrame(list(points), columns=list(SamplePoint._fields))
    df = df.astype(DTYPES)
    return df[columns]


def read_points(csv_path) -> list[SamplePoint]:
    df = pd.read_csv(csv_path, dtype={"sample_id": str})
    missing = [c for c in EXPORT_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{csv_path}: missing column(s) {', '.join(missing)}")
    return [
        SamplePoint(str(r.sample_id), float(r.longitude), float(r.latitude), int(r.flood))
        for r in df.itertuples(index=False)
    ]


def duplicate_ids(points: Iterable[SamplePoint]) -> list[str]:
    counts = Counter(p.sample_id for p in points)
    return sorted(k for k, v in counts.items() if v > 1)

