# floodpoints/check_points.py
# --------------------------------------------------------------
# Check an exported sample CSV against the flood class raster:
#  - every row's lon/lat is projected into the raster CRS and the
#    label under it is compared with the row's `flood`
#  - duplicate sample_id, labels outside {0,1}, points off the raster
#    or on nodata pixels (all of these fail the check)
#  - per-class counts
# Usage:
#   python -m floodpoints.check_points --csv data/exports/GEE_Exports/X.csv \
#       --class-raster data/processed/flood_class.tif
# --------------------------------------------------------------
import argparse
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path

import numpy as np
import rasterio
from rasterio.transform import rowcol
from rasterio.warp import transform as warp_transform

from floodpoints.records import class_histogram, duplicate_ids, read_points


@dataclass
class CheckReport:
    n: int = 0
    histogram: dict = field(default_factory=dict)
    mismatches: list = field(default_factory=list)
    off_raster: list = field(default_factory=list)
    nodata: list = field(default_factory=list)
    bad_labels: list = field(default_factory=list)
    duplicate_ids: list = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (self.mismatches or self.off_raster or self.nodata or self.bad_labels or self.duplicate_ids)


def check_points(points, class_raster) -> CheckReport:
    rep = CheckReport(n=len(points), histogram=class_histogram(points), duplicate_ids=duplicate_ids(points))
    rep.bad_labels = [p.sample_id for p in points if p.flood not in (0, 1)]
    if not points:
        return rep

    with rasterio.open(class_raster) as src:
        arr = src.read(1)
        nodata = src.nodata
        xs, ys = warp_transform("EPSG:4326", src.crs,
                                [p.longitude for p in points], [p.latitude for p in points])
        rows, cols = rowcol(src.transform, xs, ys)

    for p, r, c in zip(points, np.atleast_1d(rows), np.atleast_1d(cols)):
        if not (0 <= r < arr.shape[0] and 0 <= c < arr.shape[1]):
            rep.off_raster.append(p.sample_id)
            continue
        v = arr[r, c]
        if nodata is not None and v == nodata:
            rep.nodata.append(p.sample_id)
        elif int(v) != p.flood:
            rep.mismatches.append(p.sample_id)
    return rep


def main():
    p = argparse.ArgumentParser(description="Round-trip check of sample points against the class raster.")
    p.add_argument("--csv", required=True, help="Exported CSV (sample_id, longitude, latitude, flood)")
    p.add_argument("--class-raster", required=True, help="Flood class GeoTIFF (0/1, from --class-raster)")
    p.add_argument("--max-mismatch", type=float, default=0.01,
                   help="Tolerated share of label mismatches (pixel-boundary rounding). Default 0.01")
    p.add_argument("--out", default="", help="Optional JSON report path")
    args = p.parse_args()

    for path in (args.csv, args.class_raster):
        if not Path(path).exists():
            raise SystemExit(f"[FATAL] Missing file: {path}")

    points = read_points(args.csv)
    rep = check_points(points, args.class_raster)

    print(f"[INFO] Points: {rep.n}  by class: {rep.histogram}")
    print(f"[INFO] Label mismatches: {len(rep.mismatches)}  off raster: {len(rep.off_raster)}  "
          f"on nodata: {len(rep.nodata)}")
    if rep.duplicate_ids:
        print(f"[ERROR] Duplicate sample_id: {', '.join(rep.duplicate_ids[:10])}")
    if rep.bad_labels:
        print(f"[ERROR] flood outside {{0,1}} for: {', '.join(rep.bad_labels[:10])}")
    if rep.off_raster:
        print(f"[ERROR] Points off the class raster: {', '.join(rep.off_raster[:10])}")
    if rep.nodata:
        print(f"[ERROR] Points on nodata pixels (no label to compare): {', '.join(rep.nodata[:10])}")

    if args.out:
        Path(args.out).parent.mkdir(parents=True, exist_ok=True)
        with open(args.out, "w") as f:
            json.dump(asdict(rep), f, indent=2)
        print(f"✔ Saved report → {args.out}")

    share = len(rep.mismatches) / max(1, rep.n)
    if share > args.max_mismatch:
        print(f"[ERROR] Mismatch share {share:.4f} > --max-mismatch {args.max_mismatch:g}")
    if rep.duplicate_ids or rep.bad_labels or rep.off_raster or rep.nodata or share > args.max_mismatch:
        return 1
    print("✔ Sample points agree with the class raster.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
