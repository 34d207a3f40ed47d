# run_all.py
# --------------------------------------------------------------------------------------
# Full pipeline runner for the flood point extractor:
# extract_points (+ class raster, + HTML map) -> check_points.
#
# Notes:
# - Earth Engine mode needs auth (earthengine authenticate) and EE_PROJECT in config.py.
#   Its CSV lands in Google Drive, so the round-trip check only runs for --engine local.
# - Each step runs in its own process; a failing step stops the run with its exit code.
# --------------------------------------------------------------------------------------

import argparse
import subprocess
import sys
import time
from pathlib import Path

import config

ROOT = Path(__file__).resolve().parent
PROC_DIR = ROOT / config.PROC_DIR
EXPORTS_DIR = ROOT / config.EXPORTS_DIR


def sh(cmd: list[str], cwd: Path = ROOT) -> None:
    """Run a command in a separate process; stop on error with a clear message."""
    print("\n" + "=" * 88)
    print(">>>", " ".join(cmd))
    print("=" * 88)
    res = subprocess.run(cmd, cwd=str(cwd))
    if res.returncode != 0:
        print(f"\n[ERROR] Exit code {res.returncode}: {' '.join(cmd)}")
        sys.exit(res.returncode)


def preflight(require_ee: bool, catalog: Path = None) -> None:
    """Basic checks: interpreter, core Python modules, config, (optionally) the EE project."""
    print(f"[INFO] Python: {sys.executable}")

    required = ["numpy", "pandas", "rasterio", "geopandas", "shapely", "pyproj", "folium", "PIL"]
    if require_ee:
        required += ["ee", "geemap"]

    missing = []
    for m in required:
        try:
            __import__(m if m != "PIL" else "PIL.Image")
        except Exception:
            missing.append(m)
    if missing:
        print(f"[ERROR] Missing required modules: {', '.join(missing)}")
        print("        Install with:  python -m pip install -e .")
        sys.exit(1)

    if require_ee:
        ee_project = getattr(config, "EE_PROJECT", None)
        if not ee_project or not isinstance(ee_project, str) or not ee_project.strip():
            print("[ERROR] EE_PROJECT is not set in config.py.")
            print('        Example: EE_PROJECT = "your-gcp-project-id"')
            sys.exit(1)
        print(f"[INFO] EE_PROJECT: {ee_project}")
    else:
        catalog = Path(catalog or ROOT / config.CATALOG_DIR)
        if not (catalog / "catalog.csv").exists():
            print(f"[WARN] No catalog.csv under {catalog}; pass --catalog to point at your scenes.")


def main():
    parser = argparse.ArgumentParser(
        description="Run the flood point pipeline (extract → class raster/map → round-trip check)."
    )
    parser.add_argument("--engine", choices=["ee", "local"], default="ee")
    parser.add_argument("--catalog", default=str(ROOT / config.CATALOG_DIR),
                        help="Local S1 catalog folder (local engine).")
    parser.add_argument("--aoi", default="", help="AOI vector file; default is the config bbox.")
    parser.add_argument("--points-per-class", type=int, default=config.POINTS_PER_CLASS)
    parser.add_argument("--threshold", type=float, default=config.VV_DIFF_THRESHOLD)
    parser.add_argument("--seed", type=int, default=config.SEED)
    parser.add_argument("--skip-map", action="store_true", help="Do not write the HTML map.")
    parser.add_argument("--basemap", default="CartoDB.Positron", help="Basemap for the HTML map.")
    parser.add_argument("--skip-check", action="store_true", help="Skip the round-trip check.")
    args = parser.parse_args()

    t0 = time.time()
    PROC_DIR.mkdir(parents=True, exist_ok=True)
    preflight(require_ee=(args.engine == "ee"), catalog=args.catalog)

    class_tif = PROC_DIR / "flood_class.tif"
    map_html = PROC_DIR / "flood_points.html"
    csv_path = EXPORTS_DIR / config.EXPORT_FOLDER / f"{config.EXPORT_FILE_NAME}.csv"

    # 1) Extract points (+ class raster + map)
    cmd = [
        sys.executable, "-m", "floodpoints.extract_points",
        "--engine", args.engine,
        "--points-per-class", str(args.points_per_class),
        "--threshold", str(args.threshold),
        "--seed", str(args.seed),
    ]
    if args.engine == "local":
        # EE downloads of a 10 m class raster hit the getDownloadURL size limit on large AOIs
        cmd += ["--catalog", args.catalog, "--exports-dir", str(EXPORTS_DIR), "--class-raster", str(class_tif)]
    if args.aoi:
        cmd += ["--aoi", args.aoi]
    if not args.skip_map:
        cmd += ["--map", str(map_html), "--basemap", args.basemap]
    sh(cmd)

    # 2) Round-trip check (only when the CSV is on this machine)
    if args.engine == "local" and not args.skip_check:
        if not csv_path.exists():
            print(f"[ERROR] extract_points ran but {csv_path} is missing.")
            sys.exit(1)
        sh([
            sys.executable, "-m", "floodpoints.check_points",
            "--csv", str(csv_path),
            "--class-raster", str(class_tif),
            "--out", str(PROC_DIR / "check_report.json"),
        ])
    elif args.engine == "ee":
        print("[INFO] Round-trip check skipped: the CSV is exported to Google Drive.")
        print("       Download it, save the class raster with extract_points --class-raster, then run:")
        print("       python -m floodpoints.check_points --csv <file> --class-raster <tif>")

    dt = time.time() - t0
    print("\n" + "=" * 88)
    print(f"DONE! Pipeline finished in {dt:.1f} s")
    print("Outputs:")
    if not args.skip_map:
        print(f" - HTML:      {map_html}")
    if args.engine == "local":
        print(f" - Class TIF: {class_tif}")
        print(f" - CSV:       {csv_path}")
    else:
        print(" - CSV export started as a Task. Check Code Editor → Tasks.")
    print("=" * 88)


if __name__ == "__main__":
    main()
