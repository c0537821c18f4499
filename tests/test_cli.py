"""
CLI smoke tests against a small on-disk series.
"""

import json

import numpy as np
import pytest

import cli


def test_dry_run_prints_dto(capsys):
    assert cli.main(["tf", "--dry-run", "--preset", "MIP"]) == 0
    out = capsys.readouterr().out
    assert '"preset": "MIP"' in out


def test_build_requires_input():
    with pytest.raises(SystemExit):
        cli.main(["build"])


def test_tf_writes_texture(tmp_path, capsys):
    assert cli.main(["tf", "--preset", "CT-Skin", "--output", str(tmp_path)]) == 0

    texture = np.load(tmp_path / "tf_CT-Skin.npy")
    assert texture.shape == (4096, 4)
    assert texture.dtype == np.uint8
    assert "Skin Surface" in capsys.readouterr().out


def test_unknown_preset_fails(tmp_path):
    assert cli.main(["tf", "--preset", "Nope", "--output", str(tmp_path)]) == 2


def test_validate(series_dir, capsys):
    assert cli.main(["validate", "--input", str(series_dir)]) == 0
    assert "Geometry: VALID" in capsys.readouterr().out


def test_build_exports_npy(series_dir, tmp_path):
    out = tmp_path / "out"
    assert cli.main(["build", "--input", str(series_dir), "--output", str(out), "--cache-mb", "1"]) == 0

    volume = np.load(out / "volume.npy")
    assert volume.shape == (3, 2, 2)
    assert volume.dtype == np.int16

    meta = json.loads((out / "volume.json").read_text(encoding="utf-8"))
    assert meta["dimensions"] == [2, 2, 3]
    assert meta["spacing"] == pytest.approx([0.75, 0.5, 10.0])


def test_mip_writes_planes(series_dir, tmp_path):
    out = tmp_path / "mip"
    args = ["mip", "--input", str(series_dir), "--output", str(out), "--slab", "1", "--slices", "0", "2"]
    assert cli.main(args) == 0

    first = np.load(out / "mip_z0000_slab1.npy")
    last = np.load(out / "mip_z0002_slab1.npy")
    assert first.shape == (2, 2)
    # HU rises with z in the fixture series, so a slab's maximum is its top slice
    assert list(first.ravel()) == list(np.arange(4) + 10 - 1024)
    assert list(last.ravel()) == list(np.arange(4) + 20 - 1024)


def test_config_file(series_dir, tmp_path):
    cfg = tmp_path / "run.json"
    cfg.write_text(json.dumps({"input_path": str(series_dir), "output_dir": str(tmp_path / "cfg")}), encoding="utf-8")
    assert cli.main(["validate", "--config", str(cfg)]) == 0
