# floodpoints/local_engine.py
# --------------------------------------------------------------------------------------
# Offline engine: the same S1 change-detection pipeline evaluated on a folder of
# Sentinel-1 GeoTIFF scenes.
#
# Catalog layout:
#   <catalog>/catalog.csv   columns: path, date, instrument_mode, orbit_pass, polarisations
#   <catalog>/<scene>.tif   one band per polarisation, in the order listed in `polarisations`
#
# Every raster handle is deferred: building the plan only chains functions; pixels
# are read and reduced the first time compute() is called (and cached after that).
# --------------------------------------------------------------------------------------
from __future__ import annotations

import math
import re
import warnings
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd
import pyproj
import rasterio
from affine import Affine
from rasterio import features
from rasterio.transform import array_bounds, rowcol, xy
from rasterio.vrt import WarpedVRT
from rasterio.warp import transform_bounds, Resampling
from shapely.geometry import box, mapping

from floodpoints.aoi import WGS84, project_geometry
from floodpoints.errors import InsufficientDataError
from floodpoints.export import submit_local_csv
from floodpoints.records import SamplePoint, class_histogram

CLASS_NODATA = 255
METRES_PER_DEGREE = 111_320.0
CATALOG_FILE = "catalog.csv"
CATALOG_COLUMNS = ["path", "date", "instrument_mode", "orbit_pass", "polarisations"]


# ---------- grid ----------

@dataclass(frozen=True)
class Grid:
    """Pixel grid in the processing CRS, snapped to multiples of `scale`."""
    crs: str
    transform: Affine
    width: int
    height: int

    @classmethod
    def for_aoi(cls, aoi, crs: str, scale: float) -> "Grid":
        if pyproj.CRS.from_user_input(crs).is_geographic:
            scale = scale / METRES_PER_DEGREE
        xmin, ymin, xmax, ymax = project_geometry(aoi, crs).bounds
        x0 = math.floor(xmin / scale) * scale
        y1 = math.ceil(ymax / scale) * scale
        width = max(1, math.ceil((xmax - x0) / scale))
        height = max(1, math.ceil((y1 - ymin) / scale))
        return cls(crs, Affine(scale, 0.0, x0, 0.0, -scale, y1), width, height)

    @property
    def shape(self):
        return (self.height, self.width)

    @property
    def bounds_lonlat(self):
        return transform_bounds(self.crs, WGS84, *array_bounds(self.height, self.width, self.transform))

    def aoi_mask(self, aoi) -> np.ndarray:
        """True where the pixel centre falls inside the AOI."""
        return features.geometry_mask(
            [mapping(project_geometry(aoi, self.crs))],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )

    def centers_lonlat(self, rows, cols):
        xs, ys = xy(self.transform, rows, cols, offset="center")
        to_ll = pyproj.Transformer.from_crs(self.crs, WGS84, always_xy=True)
        lon, lat = to_ll.transform(np.asarray(xs, dtype="float64"), np.asarray(ys, dtype="float64"))
        return np.atleast_1d(lon), np.atleast_1d(lat)

    def rowcol_lonlat(self, lon, lat):
        to_grid = pyproj.Transformer.from_crs(WGS84, self.crs, always_xy=True)
        x, y = to_grid.transform(lon, lat)
        return rowcol(self.transform, x, y)


# ---------- catalog ----------

def _split_pols(v) -> tuple:
    return tuple(p for p in re.split(r"[;,\s]+", str(v).strip().upper()) if p)


@dataclass(frozen=True)
class Scene:
    path: Path
    date: date
    instrument_mode: str
    orbit_pass: str
    polarisations: tuple
    footprint: object  # shapely polygon, EPSG:4326

    def band_index(self, pol: str) -> int:
        return self.polarisations.index(pol.upper()) + 1

    def read_onto(self, grid: Grid, pol: str) -> np.ndarray:
        """Read one polarisation warped onto `grid` (NaN where there is no data).

        Only the source blocks under the grid footprint are read.
        """
        with rasterio.open(self.path) as src, WarpedVRT(
            src,
            crs=grid.crs,
            transform=grid.transform,
            width=grid.width,
            height=grid.height,
            resampling=Resampling.nearest,
            nodata=np.nan,
            dtype="float32",
        ) as vrt:
            return vrt.read(self.band_index(pol))


class SceneCatalog:
    """Filterable list of scenes, chained the same way as an ee.ImageCollection."""

    def __init__(self, scenes, band=None):
        self.scenes = list(scenes)
        self.band = band

    @classmethod
    def from_dir(cls, catalog_dir) -> "SceneCatalog":
        catalog_dir = Path(catalog_dir)
        index = catalog_dir / CATALOG_FILE
        if not index.exists():
            raise InsufficientDataError(f"Scene catalog not found: {index}")
        df = pd.read_csv(index, dtype=str)
        missing = [c for c in CATALOG_COLUMNS if c not in df.columns]
        if missing:
            raise InsufficientDataError(f"{index}: missing column(s) {', '.join(missing)}")

        scenes = []
        for r in df.itertuples(index=False):
            path = Path(r.path)
            if not path.is_absolute():
                path = catalog_dir / path
            if not path.exists():
                print(f"[WARN] Catalog entry missing on disk (skipped): {path}")
                continue
            with rasterio.open(path) as src:
                fp = box(*transform_bounds(src.crs, WGS84, *src.bounds))
            scenes.append(Scene(
                path=path,
                date=date.fromisoformat(str(r.date).strip()[:10]),
                instrument_mode=str(r.instrument_mode).strip().upper(),
                orbit_pass=str(r.orbit_pass).strip().upper(),
                polarisations=_split_pols(r.polarisations),
                footprint=fp,
            ))
        return cls(scenes)

    def __len__(self):
        return len(self.scenes)

    def __iter__(self):
        return iter(self.scenes)

    def _derive(self, scenes, band=None):
        return SceneCatalog(scenes, band if band is not None else self.band)

    def filter_bounds(self, aoi):
        return self._derive(s for s in self.scenes if s.footprint.intersects(aoi))

    def filter_eq(self, attr, value):
        value = str(value).upper()
        return self._derive(s for s in self.scenes if getattr(s, attr) == value)

    def filter_list_contains(self, attr, value):
        value = str(value).upper()
        return self._derive(s for s in self.scenes if value in getattr(s, attr))

    def filter_date(self, window):
        return self._derive(s for s in self.scenes if window.contains(s.date))

    def select(self, band):
        return self._derive(self.scenes, band=band.upper())


# ---------- deferred handles ----------

class LocalRaster:
    """A raster that is only computed when compute() is first called."""

    def __init__(self, grid: Grid, fn, name: str, nodata=np.nan):
        self.grid = grid
        self.name = name
        self.nodata = nodata
        self._fn = fn
        self._value = None

    def compute(self) -> np.ndarray:
        if self._value is None:
            self._value = self._fn()
        return self._value

    @property
    def evaluated(self) -> bool:
        return self._value is not None

    def valid_mask(self) -> np.ndarray:
        arr = self.compute()
        if isinstance(self.nodata, float) and np.isnan(self.nodata):
            return np.isfinite(arr)
        return arr != self.nodata

    def __repr__(self):
        state = "computed" if self.evaluated else "deferred"
        return f"<LocalRaster {self.name} {self.grid.width}x{self.grid.height} {state}>"


class LocalSampleSet:
    def __init__(self, fn):
        self._fn = fn
        self._points = None

    def collect(self) -> list:
        if self._points is None:
            self._points = self._fn()
        return self._points


# ---------- engine ----------

def median_composite(stack) -> np.ndarray:
    with warnings.catch_warnings():
        # all-NaN pixels stay NaN; numpy warns about them
        warnings.simplefilter("ignore", RuntimeWarning)
        return np.nanmedian(np.stack(stack), axis=0).astype(np.float32)


def stratified_pick(classes, valid, class_values, counts, seed):
    """Flat pixel indices per class value, drawn without replacement from one seeded PCG64 stream."""
    rng = np.random.default_rng(seed)
    picks = {}
    for value, n in zip(class_values, counts):
        idx = np.flatnonzero(valid & (classes == value))
        k = min(int(n), idx.size)
        picks[value] = np.sort(rng.choice(idx, size=k, replace=False)) if k else idx[:0]
    return picks


class LocalEngine:
    name = "local"

    def __init__(self, catalog_dir, exports_dir):
        self.catalog_dir = Path(catalog_dir)
        self.exports_dir = Path(exports_dir)
        self._catalog = None

    @property
    def catalog(self) -> SceneCatalog:
        if self._catalog is None:
            self._catalog = SceneCatalog.from_dir(self.catalog_dir)
        return self._catalog

    # --- acquisition

    def s1_collection(self, aoi, params) -> SceneCatalog:
        return (self.catalog
                .filter_bounds(aoi)
                .filter_eq("instrument_mode", params.instrument_mode)
                .filter_eq("orbit_pass", params.orbit_pass)
                .filter_list_contains("polarisations", params.polarization)
                .select(params.polarization))

    def image_count(self, collection: SceneCatalog, window) -> int:
        return len(collection.filter_date(window))

    def composite(self, collection: SceneCatalog, window, aoi, params, name) -> LocalRaster:
        grid = Grid.for_aoi(aoi, params.crs, params.scale)
        scenes = collection.filter_date(window)

        def run():
            if not len(scenes):
                raise InsufficientDataError(f"No Sentinel-1 scenes in {name} window {window}")
            stack = [s.read_onto(grid, scenes.band) for s in scenes]
            out = median_composite(stack)
            out[~grid.aoi_mask(aoi)] = np.nan
            if not np.isfinite(out).any():
                raise InsufficientDataError(f"{name} composite has no valid pixels inside the AOI ({window})")
            return out

        return LocalRaster(grid, run, name)

    # --- change detection

    def difference(self, pre: LocalRaster, post: LocalRaster) -> LocalRaster:
        return LocalRaster(pre.grid, lambda: pre.compute() - post.compute(), "vvDiff")

    def classify(self, change: LocalRaster, threshold: float, aoi) -> LocalRaster:
        def run():
            diff = change.compute()
            out = np.where(diff > threshold, 1, 0).astype(np.uint8)
            out[~np.isfinite(diff)] = CLASS_NODATA
            out[~change.grid.aoi_mask(aoi)] = CLASS_NODATA
            return out

        return LocalRaster(change.grid, run, "flood", nodata=CLASS_NODATA)

    def flood_mask(self, classes: LocalRaster) -> LocalRaster:
        def run():
            arr = classes.compute()
            return np.where(arr == 1, 1.0, np.nan).astype(np.float32)

        return LocalRaster(classes.grid, run, "flood_mask")

    # --- sampling

    def stratified_sample(self, classes: LocalRaster, aoi, params) -> LocalSampleSet:
        grid = classes.grid

        def run():
            arr = classes.compute()
            values = list(params.class_values)
            picks = stratified_pick(arr, classes.valid_mask(), values,
                                    [params.points_per_class] * len(values), params.seed)
            points = []
            for value in values:
                flat = picks[value]
                if not flat.size:
                    continue
                rows, cols = np.divmod(flat, grid.width)
                lon, lat = grid.centers_lonlat(rows, cols)
                for lo, la in zip(lon, lat):
                    # feature ids are the running index, like a server-side FeatureCollection
                    points.append(SamplePoint(str(len(points)), float(lo), float(la), int(value)))
            return points

        return LocalSampleSet(run)

    def size(self, samples: LocalSampleSet) -> int:
        return len(samples.collect())

    def histogram(self, samples: LocalSampleSet) -> dict:
        return class_histogram(samples.collect())

    def collect(self, samples: LocalSampleSet) -> list:
        return samples.collect()

    # --- outputs

    def submit_export(self, samples: LocalSampleSet, columns, folder, file_name, description):
        return submit_local_csv(samples.collect(), columns, self.exports_dir, folder, file_name, description)

    def save_class_raster(self, classes: LocalRaster, path, aoi=None, scale=None, crs=None) -> Path:
        # the grid (and so region, scale, crs) is fixed when the plan is built
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        arr = classes.compute()
        profile = dict(
            driver="GTiff", height=arr.shape[0], width=arr.shape[1], count=1,
            dtype="uint8", crs=classes.grid.crs, transform=classes.grid.transform,
            nodata=CLASS_NODATA, compress="lzw",
        )
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(arr, 1)
            dst.set_band_description(1, "flood")
        return path

    def map_layer(self, raster: LocalRaster, vis: dict, name: str, show: bool, workdir):
        from floodpoints.visualize import image_overlay
        return image_overlay(raster.compute(), raster.grid.bounds_lonlat, vis, name, show, workdir)
