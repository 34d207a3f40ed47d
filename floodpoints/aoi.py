# floodpoints/aoi.py
"""
Area of interest handling: load, union, simplify, measure.

The AOI is kept as a shapely geometry in EPSG:4326 and passed explicitly to
every stage. Simplification runs in a metric CRS so the tolerance is in
metres, and preserves topology.
"""
from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import pyproj
from shapely.geometry import box, mapping, shape
from shapely.geometry.polygon import orient
from shapely.ops import unary_union

from floodpoints.errors import AOIError

WGS84 = "EPSG:4326"
_GEOD = pyproj.Geod(ellps="WGS84")


def aoi_from_bbox(b):
    # b = [xmin, ymin, xmax, ymax] in lon/lat
    if b is None or len(b) != 4:
        raise AOIError(f"bbox must be [xmin, ymin, xmax, ymax], got {b!r}")
    xmin, ymin, xmax, ymax = map(float, b)
    if not (xmin < xmax and ymin < ymax):
        raise AOIError(f"Degenerate bbox: {b!r}")
    if not (-180 <= xmin and xmax <= 180 and -90 <= ymin and ymax <= 90):
        raise AOIError(f"bbox outside lon/lat range: {b!r}")
    return box(xmin, ymin, xmax, ymax)


def load_aoi(path):
    """Read a vector file (GeoJSON, GPKG, SHP) and dissolve it to one geometry in EPSG:4326."""
    path = Path(path)
    if not path.exists():
        raise AOIError(f"AOI file not found: {path}")
    gdf = gpd.read_file(path)
    if gdf.empty:
        raise AOIError(f"AOI file has no features: {path}")
    if gdf.crs is None:
        print(f"[WARN] {path.name} has no CRS; assuming {WGS84}")
        gdf = gdf.set_crs(WGS84)
    gdf = gdf.to_crs(WGS84)
    return clean_aoi(unary_union([g for g in gdf.geometry if g is not None and not g.is_empty]))


def aoi_from_geojson(geojson: dict):
    """Accept a GeoJSON geometry, Feature or FeatureCollection dict."""
    kind = geojson.get("type")
    if kind == "FeatureCollection":
        geoms = [shape(f["geometry"]) for f in geojson.get("features", []) if f.get("geometry")]
        return clean_aoi(unary_union(geoms))
    if kind == "Feature":
        return clean_aoi(shape(geojson["geometry"]))
    return clean_aoi(shape(geojson))


def clean_aoi(geom):
    if geom is None or geom.is_empty:
        raise AOIError("AOI geometry is empty")
    if not geom.is_valid:
        geom = geom.buffer(0)
    if geom.geom_type not in ("Polygon", "MultiPolygon"):
        # drop stray points / lines from a GeometryCollection
        polys = [g for g in getattr(geom, "geoms", [geom]) if g.geom_type in ("Polygon", "MultiPolygon")]
        if not polys:
            raise AOIError(f"AOI must be polygonal, got {geom.geom_type}")
        geom = unary_union(polys)
    return geom


def metric_crs(geom, crs: str | None = None) -> pyproj.CRS:
    """Projected CRS to measure metres in: `crs` when it is projected, else the local UTM zone."""
    if crs:
        c = pyproj.CRS.from_user_input(crs)
        if c.is_projected:
            return c
    return gpd.GeoSeries([geom], crs=WGS84).estimate_utm_crs()


def simplify_aoi(geom, tolerance_m: float, crs: str | None = None):
    if tolerance_m is None or tolerance_m <= 0:
        return geom
    work = metric_crs(geom, crs)
    s = gpd.GeoSeries([geom], crs=WGS84).to_crs(work)
    simplified = s.simplify(tolerance_m, preserve_topology=True).to_crs(WGS84).iloc[0]
    if simplified is None or simplified.is_empty:
        print(f"[WARN] AOI collapses at {tolerance_m} m tolerance; using it unsimplified.")
        return geom
    return clean_aoi(simplified)


def aoi_area_km2(geom) -> float:
    # orient() makes every shell counter-clockwise so part areas add up positive
    parts = getattr(geom, "geoms", [geom])
    area = sum(_GEOD.geometry_area_perimeter(orient(p))[0] for p in parts)
    return abs(area) / 1e6


def project_geometry(geom, dst_crs):
    """Reproject an EPSG:4326 geometry into dst_crs."""
    return gpd.GeoSeries([geom], crs=WGS84).to_crs(dst_crs).iloc[0]


def prepare_aoi(geom, tolerance_m: float, crs: str | None = None):
    """Simplify and report the area change; simplification is lossy but never an error."""
    before = aoi_area_km2(geom)
    simplified = simplify_aoi(geom, tolerance_m, crs)
    after = aoi_area_km2(simplified)
    print(f"[INFO] AOI simplified for stability (tolerance {tolerance_m:g} m).")
    print(f"[INFO] AOI area (km²): {after:.2f}  (before simplification: {before:.2f})")
    return simplified


def to_geojson(geom) -> dict:
    return mapping(geom)
