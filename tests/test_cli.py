"""Tests for the sdfatlas command line."""
from __future__ import annotations

import logging

import numpy as np
import pytest
import trimesh

from sdfatlas import load_png, read_field
from sdfatlas.cli import main


@pytest.fixture
def cube_stl(tmp_path):
    path = tmp_path / "cube.stl"
    trimesh.creation.box(extents=(1.0, 1.0, 1.0)).export(str(path))
    return path


@pytest.fixture
def field_file(tmp_path, cube_stl):
    out = tmp_path / "cube.bin"
    assert main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "6", "--workers", "1"]) == 0
    return out


class TestGenerate:
    def test_writes_field(self, tmp_path, cube_stl):
        out = tmp_path / "distfield.bin"
        rc = main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "8", "--workers", "1"])
        assert rc == 0
        assert out.stat().st_size == 512
        assert read_field(out)[4, 4, 4] == 0

    def test_atlas_png(self, tmp_path, cube_stl):
        out = tmp_path / "distfield.bin"
        png = tmp_path / "atlas.png"
        rc = main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "4",
                   "--workers", "1", "--atlas-png", str(png)])
        assert rc == 0
        assert load_png(png).shape == (4, 16)
        assert load_png(png).tobytes() == out.read_bytes()

    def test_size_one_rejected(self, tmp_path, cube_stl, caplog):
        out = tmp_path / "distfield.bin"
        with caplog.at_level(logging.ERROR):
            rc = main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "1"])
        assert rc == 1
        assert "resolution" in caplog.text
        assert not out.exists()

    def test_missing_input(self, tmp_path):
        rc = main(["generate", "-i", str(tmp_path / "nope.obj"), "-o", str(tmp_path / "x.bin")])
        assert rc == 1

    def test_unwritable_output(self, tmp_path, cube_stl):
        rc = main(["generate", "-i", str(cube_stl), "-o", str(tmp_path / "no" / "x.bin"), "--size", "4"])
        assert rc == 1

    def test_unwritable_atlas_leaves_no_field(self, tmp_path, cube_stl):
        out = tmp_path / "distfield.bin"
        png = tmp_path / "missing_dir" / "atlas.png"
        rc = main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "4",
                   "--workers", "1", "--atlas-png", str(png)])
        assert rc == 1
        assert not out.exists()
        assert sorted(p.name for p in tmp_path.iterdir()) == ["cube.stl"]

    def test_unknown_atlas_format_leaves_no_output(self, tmp_path, cube_stl):
        out = tmp_path / "distfield.bin"
        rc = main(["generate", "-i", str(cube_stl), "-o", str(out), "--size", "4",
                   "--workers", "1", "--atlas-png", str(tmp_path / "atlas.foo")])
        assert rc == 1
        assert sorted(p.name for p in tmp_path.iterdir()) == ["cube.stl"]

    def test_missing_required_arguments(self):
        with pytest.raises(SystemExit):
            main(["generate", "-o", "x.bin"])


class TestRender:
    def test_png_and_npy(self, tmp_path, field_file):
        png = tmp_path / "depth.png"
        npy = tmp_path / "depth.npy"
        rc = main(["render", str(field_file), "-o", str(png), "--npy", str(npy),
                   "--width", "16", "--height", "9", "--steps", "5"])
        assert rc == 0
        assert png.stat().st_size > 0
        depth = np.load(npy)
        assert depth.shape == (9, 16)
        assert np.all(np.isfinite(depth))

    def test_bad_field_file(self, tmp_path):
        bad = tmp_path / "bad.bin"
        bad.write_bytes(b"\x00" * 10)
        assert main(["render", str(bad), "-o", str(tmp_path / "d.png")]) == 1

    def test_invalid_viewport(self, tmp_path, field_file):
        assert main(["render", str(field_file), "-o", str(tmp_path / "d.png"), "--width", "0"]) == 1


def test_version(capsys):
    with pytest.raises(SystemExit) as info:
        main(["--version"])
    assert info.value.code == 0
    assert "sdfatlas" in capsys.readouterr().out
