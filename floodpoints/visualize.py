# floodpoints/visualize.py
# --------------------------------------------------------------
# Interactive HTML map for a sampling plan (side channel only,
# nothing here feeds back into sampling or export):
#  - ΔVV (pre - post), blue → white → red
#  - flood mask (cyan)
#  - flood / non-flood points (hidden until toggled)
#  - AOI outline
# Local rasters become PNG overlays, Earth Engine rasters tile layers.
# --------------------------------------------------------------
from __future__ import annotations

from pathlib import Path

import folium
import numpy as np
from PIL import Image, ImageColor

from floodpoints.aoi import to_geojson
from floodpoints.pipeline import CHANGE_VIS, FLOOD_MASK_VIS, POINT_COLORS

BASEMAPS = {
    "CartoDB.Positron": dict(
        tiles="https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png",
        attr="© OpenStreetMap, © CARTO",
        name="CartoDB.Positron",
        max_zoom=20,
    ),
    "OpenStreetMap": dict(tiles="OpenStreetMap", name="OpenStreetMap"),
    "Esri.WorldImagery": dict(
        tiles="https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
        attr="Tiles © Esri — Source: Esri, i-cubed, USDA, USGS, AEX, GeoEye, and the GIS User Community",
        name="Esri.WorldImagery",
        max_zoom=20,
    ),
}

# ---------- colour / PNG ----------


def palette_rgba(arr, vis, alpha=255):
    """Stretch arr to [min, max] and interpolate along vis['palette']; NaN is transparent."""
    arr = arr.astype("float32")
    colors = np.array([ImageColor.getrgb(c)[:3] for c in vis.get("palette", ["black", "white"])], dtype="float32")
    valid = np.isfinite(arr)
    vmin = vis.get("min", float(np.nanmin(arr)) if valid.any() else 0.0)
    vmax = vis.get("max", float(np.nanmax(arr)) if valid.any() else 1.0)

    span = (vmax - vmin) or 1.0
    t = np.clip((np.nan_to_num(arr, nan=vmin) - vmin) / span, 0, 1)
    if len(colors) == 1:
        rgb = np.broadcast_to(colors[0], arr.shape + (3,))
    else:
        pos = t * (len(colors) - 1)
        i0 = np.minimum(pos.astype(int), len(colors) - 2)
        frac = (pos - i0)[..., None]
        rgb = colors[i0] * (1 - frac) + colors[i0 + 1] * frac

    h, w = arr.shape
    rgba = np.zeros((h, w, 4), dtype=np.uint8)
    rgba[..., :3] = np.rint(rgb).astype(np.uint8)
    rgba[..., 3] = np.where(valid, alpha, 0)
    return rgba


def save_png_rgba(rgba, out_path, max_side=4096):
    H, W = rgba.shape[:2]
    img = Image.fromarray(rgba)
    if max(H, W) > max_side:
        scale = max_side / max(H, W)
        img = img.resize((int(W * scale), int(H * scale)), resample=Image.NEAREST)
    img.save(out_path)


def image_overlay(arr, bounds_lonlat, vis, name, show, workdir):
    west, south, east, north = bounds_lonlat
    workdir = Path(workdir)
    workdir.mkdir(parents=True, exist_ok=True)
    png = workdir / f"layer_{name.replace(' ', '_').lower()}.png"
    save_png_rgba(palette_rgba(arr, vis), png)
    return folium.raster_layers.ImageOverlay(
        name=name,
        image=str(png),
        bounds=[[south, west], [north, east]],
        opacity=0.8,
        interactive=False,
        cross_origin=False,
        zindex=5,
        show=show,
    )


# ---------- points ----------


def point_layer(points, flood, name, show=False):
    fg = folium.FeatureGroup(name=name, show=show)
    color = POINT_COLORS[flood]
    for p in points:
        if p.flood != flood:
            continue
        folium.CircleMarker(
            location=[p.latitude, p.longitude],
            radius=3,
            color=color,
            fill=True,
            fill_opacity=0.9,
            weight=1,
            tooltip=f"{p.sample_id} (flood={p.flood})",
        ).add_to(fg)
    return fg


# ---------- map ----------


def build_map(plan, out_html, basemap="CartoDB.Positron"):
    out_html = Path(out_html)
    out_html.parent.mkdir(parents=True, exist_ok=True)
    workdir = out_html.parent / f"{out_html.stem}_layers"

    c = plan.aoi.centroid
    m = folium.Map(location=[c.y, c.x], zoom_start=6, control_scale=True, tiles=None)
    if basemap in BASEMAPS:
        folium.TileLayer(**BASEMAPS[basemap]).add_to(m)
    else:
        folium.TileLayer(tiles=basemap, name="Basemap", attr=basemap).add_to(m)

    engine = plan.engine
    engine.map_layer(plan.change, CHANGE_VIS, "ΔVV (Pre-Post)", True, workdir).add_to(m)
    engine.map_layer(plan.flood_mask(), FLOOD_MASK_VIS, "Flood Mask", True, workdir).add_to(m)

    points = plan.collect()
    point_layer(points, 1, "Flood Points (1)").add_to(m)
    point_layer(points, 0, "Non-Flood Points (0)").add_to(m)

    folium.GeoJson(
        to_geojson(plan.aoi),
        name="AOI",
        style_function=lambda _: {"color": "#222", "weight": 1.5, "fillOpacity": 0.0},
    ).add_to(m)

    w, s, e, n = plan.aoi.bounds
    m.fit_bounds([[s, w], [n, e]])
    folium.LayerControl(collapsed=False).add_to(m)
    m.save(str(out_html))
    print(f"✔ Interactive map: {out_html}")
    return out_html
