import json

import numpy as np
import pytest
import rasterio

from floodpoints import check_points as cp
from floodpoints.local_engine import CLASS_NODATA
from floodpoints.pipeline import build_plan
from floodpoints.records import to_frame


@pytest.fixture
def checked(params, aoi, engine, tmp_path):
    plan = build_plan(params.with_overrides(points_per_class=30), aoi, engine)
    tif = plan.save_class_raster(tmp_path / "flood_class.tif")
    return plan.collect(), tif


def test_flipped_label_is_a_mismatch(checked):
    points, tif = checked
    bad = points[0]._replace(flood=1 - points[0].flood)
    rep = cp.check_points([bad] + points[1:], tif)
    assert rep.mismatches == [bad.sample_id]
    assert not rep.ok


def test_duplicate_and_bad_label(checked):
    points, tif = checked
    rep = cp.check_points(points + [points[0]._replace(flood=2)], tif)
    assert rep.duplicate_ids == [points[0].sample_id]
    assert rep.bad_labels == [points[0].sample_id]
    assert not rep.ok


def test_point_off_raster(checked):
    points, tif = checked
    rep = cp.check_points([points[0]._replace(longitude=points[0].longitude + 1.0)], tif)
    assert rep.off_raster == [points[0].sample_id]


def test_empty_csv_is_fine(checked):
    _, tif = checked
    rep = cp.check_points([], tif)
    assert rep.ok and rep.n == 0


def test_cli_writes_report(checked, tmp_path, monkeypatch):
    points, tif = checked
    csv = tmp_path / "points.csv"
    to_frame(points).to_csv(csv, index=False)
    out = tmp_path / "report.json"
    monkeypatch.setattr("sys.argv", ["check_points", "--csv", str(csv), "--class-raster", str(tif),
                                     "--out", str(out)])
    assert cp.main() == 0
    rep = json.loads(out.read_text())
    assert rep["n"] == 60
    assert rep["histogram"] == {"0": 30, "1": 30}


def test_cli_fails_on_missing_file(tmp_path, monkeypatch):
    monkeypatch.setattr("sys.argv", ["check_points", "--csv", str(tmp_path / "x.csv"),
                                     "--class-raster", str(tmp_path / "x.tif")])
    with pytest.raises(SystemExit, match="Missing file"):
        cp.main()


def _blank_raster(tif):
    with rasterio.open(tif, "r+") as dst:
        dst.write(np.full((dst.height, dst.width), CLASS_NODATA, dtype="uint8"), 1)


def test_points_on_nodata_fail_the_check(checked):
    points, tif = checked
    _blank_raster(tif)
    rep = cp.check_points(points, tif)
    assert len(rep.nodata) == len(points)
    assert rep.mismatches == []
    assert not rep.ok


def test_cli_fails_when_raster_has_no_labels(checked, tmp_path, monkeypatch, capsys):
    points, tif = checked
    _blank_raster(tif)
    csv = tmp_path / "points.csv"
    to_frame(points).to_csv(csv, index=False)
    monkeypatch.setattr("sys.argv", ["check_points", "--csv", str(csv), "--class-raster", str(tif)])
    assert cp.main() == 1
    out = capsys.readouterr().out
    assert "[ERROR] Points on nodata pixels" in out
    assert "agree with the class raster" not in out


def test_cli_reports_mismatch_share(checked, tmp_path, monkeypatch, capsys):
    points, tif = checked
    flipped = [p._replace(flood=1 - p.flood) for p in points[:3]] + points[3:]
    csv = tmp_path / "points.csv"
    to_frame(flipped).to_csv(csv, index=False)
    monkeypatch.setattr("sys.argv", ["check_points", "--csv", str(csv), "--class-raster", str(tif),
                                     "--max-mismatch", "0.01"])
    assert cp.main() == 1
    assert "[ERROR] Mismatch share 0.0500 > --max-mismatch 0.01" in capsys.readouterr().out
