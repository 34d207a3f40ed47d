# floodpoints/extract_points.py
"""
Stratified flood / non-flood validation points from Sentinel-1 VV change.

Usage:
  # Earth Engine, export CSV to Google Drive
  python -m floodpoints.extract_points --aoi data/aoi/sylhet.geojson

  # Offline, on a local catalog of S1 GeoTIFFs
  python -m floodpoints.extract_points --engine local --catalog data/s1_catalog \
      --bbox 91.6 24.7 91.9 24.9 --map data/processed/flood_points.html
"""
import argparse
from pathlib import Path

import config
from floodpoints.aoi import aoi_from_bbox, load_aoi, prepare_aoi
from floodpoints.errors import FloodPointsError
from floodpoints.params import RunParams
from floodpoints.pipeline import run


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Generate stratified flood / non-flood sample points (CSV).")
    p.add_argument("--engine", choices=["ee", "local"], default="ee",
                   help="Earth Engine (default) or a local Sentinel-1 GeoTIFF catalog.")
    p.add_argument("--project", default=config.EE_PROJECT, help="Earth Engine cloud project.")
    p.add_argument("--catalog", default=config.CATALOG_DIR, help="Local catalog folder (with catalog.csv).")
    p.add_argument("--exports-dir", default=config.EXPORTS_DIR,
                   help="Root folder for local CSV exports (local engine only).")

    aoi = p.add_mutually_exclusive_group()
    aoi.add_argument("--aoi", help="AOI vector file (GeoJSON / GPKG / SHP). All features are merged.")
    aoi.add_argument("--aoi-asset", help="Earth Engine FeatureCollection asset id (ee engine only).")
    aoi.add_argument("--bbox", type=float, nargs=4, metavar=("XMIN", "YMIN", "XMAX", "YMAX"),
                     help="AOI as a lon/lat box (default from config).")
    p.add_argument("--simplify-m", type=float, default=config.AOI_SIMPLIFY_M,
                   help="AOI simplification tolerance in metres (0 disables).")

    p.add_argument("--pre-start", default=None, help=f"default {config.PRE_START}")
    p.add_argument("--pre-end", default=None, help=f"default {config.PRE_END} (exclusive)")
    p.add_argument("--post-start", default=None, help=f"default {config.POST_START}")
    p.add_argument("--post-end", default=None, help=f"default {config.POST_END} (exclusive)")
    p.add_argument("--threshold", type=float, default=None,
                   help=f"ΔVV (pre - post) above which a pixel is flood (default {config.VV_DIFF_THRESHOLD}).")
    p.add_argument("--points-per-class", type=int, default=None,
                   help=f"Points per class (default {config.POINTS_PER_CLASS}).")
    p.add_argument("--seed", type=int, default=None, help=f"Sampling seed (default {config.SEED}).")
    p.add_argument("--scale", type=float, default=None, help=f"Sampling scale in metres (default {config.SCALE}).")
    p.add_argument("--crs", default=None, help=f"Processing CRS (default {config.CRS}).")
    p.add_argument("--folder", default=None, help=f"Export folder (default {config.EXPORT_FOLDER}).")
    p.add_argument("--file-name", default=None, help=f"Export file name (default {config.EXPORT_FILE_NAME}).")

    p.add_argument("--no-export", action="store_true", help="Only report counts; do not submit the export.")
    p.add_argument("--map", default="", help="Also write an HTML map to this path.")
    p.add_argument("--basemap", default="CartoDB.Positron",
                   help="Map basemap: CartoDB.Positron, OpenStreetMap, Esri.WorldImagery or a tile URL.")
    p.add_argument("--class-raster", default="", help="Also save the flood class raster GeoTIFF here.")
    return p


def resolve_aoi(args, engine):
    if args.aoi:
        return load_aoi(args.aoi)
    if args.aoi_asset:
        if engine.name != "ee":
            raise SystemExit("[FATAL] --aoi-asset needs --engine ee")
        from floodpoints.ee_engine import load_aoi_asset
        return load_aoi_asset(args.aoi_asset)
    return aoi_from_bbox(args.bbox or config.AOI)


def make_engine(args):
    if args.engine == "local":
        from floodpoints.local_engine import LocalEngine
        return LocalEngine(args.catalog, args.exports_dir)
    from floodpoints.ee_engine import EarthEngineEngine
    return EarthEngineEngine(project=args.project)


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        # parameters first: a bad config must fail before any engine call
        params = RunParams.from_config(
            pre_start=args.pre_start, pre_end=args.pre_end,
            post_start=args.post_start, post_end=args.post_end,
            threshold=args.threshold, points_per_class=args.points_per_class,
            seed=args.seed, scale=args.scale, crs=args.crs,
            folder=args.folder, file_name=args.file_name,
        )
        print(f"[INFO] Parameters: {params.describe()}")

        engine = make_engine(args)
        print(f"[INFO] Engine: {engine.name}")
        aoi = prepare_aoi(resolve_aoi(args, engine), args.simplify_m, params.crs)

        plan, task = run(params, aoi, engine, export=not args.no_export)

        if args.class_raster:
            out = plan.save_class_raster(args.class_raster)
            print(f"✔ Class raster: {out}")
        if args.map:
            from floodpoints.visualize import build_map
            build_map(plan, args.map, basemap=args.basemap)
    except FloodPointsError as e:
        raise SystemExit(f"[FATAL] {e}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
