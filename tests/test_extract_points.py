import pandas as pd
import pytest

import config
from floodpoints import export
from floodpoints.extract_points import main


def _drain_exports():
    # single worker thread: a no-op job finishes after every earlier one
    export._WORKER.submit(lambda: None).result(timeout=30)


def test_local_cli_end_to_end(catalog_dir, aoi, tmp_path, capsys):
    exports = tmp_path / "exports"
    tif = tmp_path / "processed" / "flood_class.tif"
    html = tmp_path / "processed" / "map.html"
    argv = [
        "--engine", "local", "--catalog", str(catalog_dir), "--exports-dir", str(exports),
        "--bbox", *map(str, aoi.bounds), "--simplify-m", "0",
        "--scale", "10", "--crs", "EPSG:32645", "--points-per-class", "25",
        "--class-raster", str(tif), "--map", str(html),
    ]
    assert main(argv) == 0
    _drain_exports()

    out = capsys.readouterr().out
    assert "[INFO] Engine: local" in out
    assert "Sample count by class: {'0': 25, '1': 25}" in out
    assert "Export task submitted" in out

    csv = exports / config.EXPORT_FOLDER / f"{config.EXPORT_FILE_NAME}.csv"
    df = pd.read_csv(csv)
    assert list(df.columns) == config.EXPORT_COLUMNS
    assert len(df) == 50
    assert tif.exists() and html.exists()


def test_no_export_skips_csv(catalog_dir, aoi, tmp_path, capsys):
    exports = tmp_path / "exports"
    argv = ["--engine", "local", "--catalog", str(catalog_dir), "--exports-dir", str(exports),
            "--bbox", *map(str, aoi.bounds), "--scale", "10", "--crs", "EPSG:32645",
            "--points-per-class", "5", "--no-export"]
    assert main(argv) == 0
    _drain_exports()
    assert not exports.exists()
    assert "Export task submitted" not in capsys.readouterr().out


def test_bad_parameters_fail_before_engine(tmp_path):
    # catalog does not exist; the threshold error must come first
    with pytest.raises(SystemExit, match=r"\[FATAL\].*threshold"):
        main(["--engine", "local", "--catalog", str(tmp_path / "nope"), "--threshold", "nan"])


def test_missing_catalog_is_fatal(tmp_path):
    with pytest.raises(SystemExit, match=r"\[FATAL\]"):
        main(["--engine", "local", "--catalog", str(tmp_path / "nope"), "--bbox", "87", "26", "87.1", "26.1"])


def test_aoi_asset_needs_ee_engine(catalog_dir):
    with pytest.raises(SystemExit, match="--aoi-asset"):
        main(["--engine", "local", "--catalog", str(catalog_dir), "--aoi-asset", "users/x/aoi"])


def test_basemap_flag_reaches_the_map(catalog_dir, aoi, tmp_path):
    html = tmp_path / "map.html"
    argv = ["--engine", "local", "--catalog", str(catalog_dir), "--exports-dir", str(tmp_path / "exports"),
            "--bbox", *map(str, aoi.bounds), "--scale", "10", "--crs", "EPSG:32645",
            "--points-per-class", "5", "--no-export", "--map", str(html), "--basemap", "Esri.WorldImagery"]
    assert main(argv) == 0
    text = html.read_text(encoding="utf-8")
    assert "server.arcgisonline.com" in text
    assert "basemaps.cartocdn.com" not in text
