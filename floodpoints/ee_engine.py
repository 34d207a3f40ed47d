# floodpoints/ee_engine.py
# --------------------------------------------------------------------------------------
# Earth Engine engine. Every handle here is a server-side description (ee.Image,
# ee.FeatureCollection); nothing runs until getInfo() or an export task is started.
# --------------------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import ee
import folium
import geemap

import config
from floodpoints.aoi import aoi_from_geojson, to_geojson
from floodpoints.export import ExportTask
from floodpoints.records import SamplePoint


def init_ee(project=None):
    project = project or config.EE_PROJECT
    try:
        ee.Initialize(project=project)
    except Exception:
        # Fallback to default init if project-specific init fails
        ee.Initialize()


def load_aoi_asset(asset_id):
    """Union of an ee.FeatureCollection asset, pulled client-side as a shapely geometry."""
    fc = ee.FeatureCollection(asset_id)
    return aoi_from_geojson(fc.geometry().getInfo())


def feature_to_point(feature: dict) -> SamplePoint:
    """Turn one getInfo() feature of the sample collection into a SamplePoint."""
    props = feature.get("properties") or {}
    lon = props.get("longitude")
    lat = props.get("latitude")
    if lon is None or lat is None:
        lon, lat = feature["geometry"]["coordinates"][:2]
    sample_id = props.get("sample_id", feature.get("id"))
    return SamplePoint(str(sample_id), float(lon), float(lat), int(props["flood"]))


@dataclass
class EarthEngineExportTask(ExportTask):
    task: object = field(default=None, repr=False)

    @property
    def destination(self) -> str:
        return f"Google Drive: {self.folder}/{self.file_name}.csv"

    def status(self) -> str:
        return self.task.status().get("state", "UNKNOWN")


class EarthEngineEngine:
    name = "ee"

    def __init__(self, project=None, initialize=True):
        self.project = project or config.EE_PROJECT
        if initialize:
            init_ee(self.project)

    def region(self, aoi):
        return ee.Geometry(to_geojson(aoi))

    # --- acquisition

    def s1_collection(self, aoi, params):
        return (ee.ImageCollection(config.S1_COLLECTION)
                .filterBounds(self.region(aoi))
                .filter(ee.Filter.eq('instrumentMode', params.instrument_mode))
                .filter(ee.Filter.eq('orbitProperties_pass', params.orbit_pass))
                .filter(ee.Filter.listContains('transmitterReceiverPolarisation', params.polarization))
                .select(params.polarization))

    def image_count(self, collection, window) -> int:
        start, end = window.as_strings()
        return int(collection.filterDate(start, end).size().getInfo())

    def composite(self, collection, window, aoi, params, name):
        start, end = window.as_strings()
        return collection.filterDate(start, end).median().clip(self.region(aoi)).rename(name)

    # --- change detection

    def difference(self, pre, post):
        return pre.subtract(post).rename('vvDiff')

    def classify(self, change, threshold, aoi):
        return (change.gt(threshold)
                .rename('flood')
                .toByte()
                .clip(self.region(aoi)))

    def flood_mask(self, classes):
        return classes.selfMask()

    # --- sampling

    def stratified_sample(self, classes, aoi, params):
        values = list(params.class_values)
        samples = classes.stratifiedSample(
            numPoints=0,
            classBand='flood',
            region=self.region(aoi),
            scale=params.scale,
            projection=ee.Projection(params.crs),
            classValues=values,
            classPoints=[params.points_per_class] * len(values),
            seed=params.seed,
            dropNulls=True,
            geometries=True,
        )

        def with_coords(f):
            # sample geometries come back in the sampling projection; export wants degrees
            coords = ee.Geometry(f.geometry()).transform('EPSG:4326', 1).coordinates()
            return f.set({
                'longitude': coords.get(0),
                'latitude': coords.get(1),
                'sample_id': f.id(),
            })

        return samples.map(with_coords)

    def size(self, samples) -> int:
        return int(samples.size().getInfo())

    def histogram(self, samples) -> dict:
        hist = samples.aggregate_histogram('flood').getInfo() or {}
        return {str(int(float(k))): int(v) for k, v in sorted(hist.items(), key=lambda kv: float(kv[0]))}

    def collect(self, samples) -> list:
        cols = list(config.EXPORT_COLUMNS)
        info = samples.select(cols).getInfo()
        return [feature_to_point(f) for f in info.get("features", [])]

    # --- outputs

    def submit_export(self, samples, columns, folder, file_name, description):
        task = ee.batch.Export.table.toDrive(
            collection=samples.select(list(columns)),
            description=description,
            folder=folder,
            fileNamePrefix=file_name,
            fileFormat='CSV',
            selectors=list(columns),
        )
        task.start()
        return EarthEngineExportTask(
            task_id=task.id,
            description=description,
            folder=folder,
            file_name=file_name,
            task=task,
        )

    def save_class_raster(self, classes, path, aoi=None, scale=None, crs=None) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        geemap.ee_export_image(
            classes,
            str(path),
            scale=scale,
            region=self.region(aoi) if aoi is not None else None,
            file_per_band=False,
            crs=crs,
        )
        return path

    def map_layer(self, image, vis: dict, name: str, show: bool, workdir=None):
        map_id = image.getMapId(vis)
        return folium.raster_layers.TileLayer(
            tiles=map_id["tile_fetcher"].url_format,
            attr="Google Earth Engine",
            name=name,
            overlay=True,
            control=True,
            show=show,
        )
