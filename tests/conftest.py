from pathlib import Path

import geopandas as gpd
import numpy as np
import pandas as pd
import pytest
import rasterio
from rasterio.transform import from_origin
from shapely.geometry import box

from floodpoints.local_engine import LocalEngine
from floodpoints.params import RunParams

CRS = "EPSG:32645"
X0, Y0 = 500000.0, 2876400.0  # top-left of every synthetic scene (UTM 45N, ~87E 26N)
RES = 10.0
SIZE = 40

# AOI: the inner 30 x 30 pixels of the scene footprint
AOI_UTM = box(X0 + 50, Y0 - 350, X0 + 350, Y0 - 50)

# pre = 3.0 on a 10 x 12 block (120 px), 1.0 elsewhere; post = 0.5 everywhere
FLOOD_ROWS = slice(5, 15)
FLOOD_COLS = slice(5, 17)
N_FLOOD = 120
N_AOI = 900


def pre_vv():
    vv = np.full((SIZE, SIZE), 1.0, dtype=np.float32)
    vv[FLOOD_ROWS, FLOOD_COLS] = 3.0
    return vv


def post_vv():
    return np.full((SIZE, SIZE), 0.5, dtype=np.float32)


def write_scene(path: Path, vv, vh=None, nodata=None):
    vh = np.full_like(vv, -99.0) if vh is None else vh
    profile = dict(
        driver="GTiff", height=SIZE, width=SIZE, count=2, dtype="float32",
        crs=CRS, transform=from_origin(X0, Y0, RES, RES), nodata=nodata,
    )
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(vv.astype("float32"), 1)
        dst.write(vh.astype("float32"), 2)


def make_catalog(root: Path, entries):
    """entries: dicts with name, date, vv and optional orbit / mode / pols / vh."""
    root.mkdir(parents=True, exist_ok=True)
    rows = []
    for e in entries:
        write_scene(root / f"{e['name']}.tif", e["vv"], e.get("vh"))
        rows.append({
            "path": f"{e['name']}.tif",
            "date": e["date"],
            "instrument_mode": e.get("mode", "IW"),
            "orbit_pass": e.get("orbit", "DESCENDING"),
            "polarisations": e.get("pols", "VV VH"),
        })
    pd.DataFrame(rows).to_csv(root / "catalog.csv", index=False)
    return root


@pytest.fixture
def aoi():
    return gpd.GeoSeries([AOI_UTM], crs=CRS).to_crs("EPSG:4326").iloc[0]


@pytest.fixture
def catalog_dir(tmp_path):
    wild = np.full((SIZE, SIZE), 100.0, dtype=np.float32)
    return make_catalog(tmp_path / "catalog", [
        {"name": "pre_a", "date": "2022-03-05", "vv": pre_vv()},
        {"name": "pre_b", "date": "2022-03-17", "vv": pre_vv()},
        {"name": "pre_c", "date": "2022-03-29", "vv": pre_vv()},
        # excluded: end of window is exclusive, wrong orbit, no VV
        {"name": "pre_edge", "date": "2022-04-15", "vv": wild},
        {"name": "pre_asc", "date": "2022-03-10", "vv": wild, "orbit": "ASCENDING"},
        {"name": "pre_vh", "date": "2022-03-11", "vv": wild, "pols": "VH HH"},
        {"name": "pre_ew", "date": "2022-03-12", "vv": wild, "mode": "EW"},
        {"name": "post_a", "date": "2022-06-18", "vv": post_vv()},
        {"name": "post_b", "date": "2022-06-24", "vv": post_vv()},
    ])


@pytest.fixture
def engine(catalog_dir, tmp_path):
    return LocalEngine(catalog_dir, tmp_path / "exports")


@pytest.fixture
def params():
    return RunParams.from_config(scale=RES, crs=CRS, points_per_class=500, seed=42)
