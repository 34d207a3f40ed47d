import ee
import pytest

from floodpoints.ee_engine import EarthEngineEngine, EarthEngineExportTask, feature_to_point
from floodpoints.records import SamplePoint


class _Info:
    def __init__(self, value):
        self.value = value

    def getInfo(self):
        return self.value


class FakeSamples:
    """Just enough of an ee.FeatureCollection for the materializing calls."""

    def __init__(self, features, hist):
        self.features = features
        self.hist = hist
        self.selected = None

    def size(self):
        return _Info(len(self.features))

    def aggregate_histogram(self, prop):
        assert prop == "flood"
        return _Info(self.hist)

    def select(self, cols):
        self.selected = list(cols)
        return self

    def getInfo(self):
        return {"type": "FeatureCollection", "features": self.features}


class FakeTask:
    id = "ABCDEF1234567890"

    def __init__(self):
        self.started = False

    def start(self):
        self.started = True

    def status(self):
        return {"state": "READY" if self.started else "UNSUBMITTED"}


FEATURES = [
    {"type": "Feature", "id": "1_0",
     "geometry": {"type": "Point", "coordinates": [87.0, 26.0]},
     "properties": {"sample_id": "1_0", "longitude": 87.001, "latitude": 26.002, "flood": 1}},
    {"type": "Feature", "id": "0_3",
     "geometry": {"type": "Point", "coordinates": [87.1, 26.1]},
     "properties": {"flood": 0}},
]


@pytest.fixture
def engine():
    return EarthEngineEngine(project="test-project", initialize=False)


def test_feature_to_point_prefers_properties():
    assert feature_to_point(FEATURES[0]) == SamplePoint("1_0", 87.001, 26.002, 1)


def test_feature_to_point_falls_back_to_geometry_and_id():
    assert feature_to_point(FEATURES[1]) == SamplePoint("0_3", 87.1, 26.1, 0)


def test_size_histogram_collect(engine):
    samples = FakeSamples(FEATURES, {"0": 1, "1.0": 1})
    assert engine.size(samples) == 2
    assert engine.histogram(samples) == {"0": 1, "1": 1}
    points = engine.collect(samples)
    assert [p.flood for p in points] == [1, 0]
    assert samples.selected == ["sample_id", "longitude", "latitude", "flood"]


def test_submit_export_starts_task_and_returns_id(engine, monkeypatch):
    calls = {}
    task = FakeTask()

    def fake_to_drive(**kwargs):
        calls.update(kwargs)
        return task

    monkeypatch.setattr(ee.batch.Export.table, "toDrive", fake_to_drive)
    samples = FakeSamples(FEATURES, {})
    out = engine.submit_export(samples, ["sample_id", "longitude", "latitude", "flood"],
                               folder="GEE_Exports", file_name="Flood_2022", description="Flood_2022")

    assert isinstance(out, EarthEngineExportTask)
    assert out.task_id == FakeTask.id
    assert task.started
    assert out.status() == "READY"
    assert calls["fileFormat"] == "CSV"
    assert calls["folder"] == "GEE_Exports"
    assert calls["fileNamePrefix"] == "Flood_2022"
    assert calls["selectors"] == ["sample_id", "longitude", "latitude", "flood"]
    assert "GEE_Exports/Flood_2022.csv" in out.destination
