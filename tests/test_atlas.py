"""Tests for atlas packing and atlas PNG I/O."""
from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from sdfatlas import IOFailure, atlas_column, load_png, pack, save_png, unpack


def _random_field(n: int = 6, seed: int = 0) -> np.ndarray:
    return np.random.default_rng(seed).integers(0, 256, size=(n, n, n), dtype=np.uint8)


class TestPack:
    def test_shape(self):
        assert pack(_random_field(5)).shape == (5, 25)

    def test_layout(self):
        field = _random_field(4)
        atlas = pack(field)
        for y, z, x in [(0, 0, 0), (1, 2, 3), (3, 3, 3), (2, 0, 1)]:
            assert atlas[y, z * 4 + x] == field[y, z, x]
            assert atlas[y, atlas_column(x, z, 4)] == field[y, z, x]

    def test_slice_block(self):
        field = _random_field(4)
        atlas = pack(field)
        npt.assert_array_equal(atlas[:, 2 * 4:3 * 4], field[:, 2, :])

    def test_same_bytes_as_field(self):
        field = _random_field(3)
        assert pack(field).tobytes() == field.tobytes()

    def test_round_trip(self):
        field = _random_field(7, seed=3)
        npt.assert_array_equal(unpack(pack(field)), field)

    def test_pack_returns_copy(self):
        field = _random_field(3)
        atlas = pack(field)
        atlas[0, 0] = 17 if field[0, 0, 0] != 17 else 18
        assert atlas[0, 0] != field[0, 0, 0]

    @pytest.mark.parametrize("shape", [(4, 4), (4, 4, 3), (2, 3, 3)])
    def test_pack_rejects_non_cube(self, shape):
        with pytest.raises(ValueError):
            pack(np.zeros(shape, dtype=np.uint8))

    @pytest.mark.parametrize("shape", [(4, 15), (4, 4, 4), (16,)])
    def test_unpack_rejects_bad_shape(self, shape):
        with pytest.raises(ValueError):
            unpack(np.zeros(shape, dtype=np.uint8))

    def test_atlas_column_vectorized(self):
        npt.assert_array_equal(atlas_column(np.array([0, 1, 2]), np.array([3, 3, 0]), 4), [12, 13, 2])


class TestPng:
    def test_round_trip(self, tmp_path):
        atlas = pack(_random_field(6, seed=9))
        path = tmp_path / "atlas.png"
        save_png(path, atlas)
        npt.assert_array_equal(load_png(path), atlas)

    def test_rejects_float_atlas(self, tmp_path):
        with pytest.raises(ValueError):
            save_png(tmp_path / "atlas.png", np.zeros((4, 16)))

    def test_unknown_extension(self, tmp_path):
        with pytest.raises(IOFailure):
            save_png(tmp_path / "atlas.foo", pack(_random_field(4)))

    def test_missing_directory(self, tmp_path):
        with pytest.raises(IOFailure):
            save_png(tmp_path / "nope" / "atlas.png", pack(_random_field(4)))

    def test_load_missing(self, tmp_path):
        with pytest.raises(IOFailure):
            load_png(tmp_path / "missing.png")

    def test_load_wrong_shape(self, tmp_path):
        from skimage import io as skio

        path = tmp_path / "square.png"
        skio.imsave(str(path), np.zeros((8, 8), dtype=np.uint8), check_contrast=False)
        with pytest.raises(IOFailure):
            load_png(path)
