#!/usr/bin/env python
"""
Tests for TargetMap and VertexVectorArray.
"""

import numpy as np
import pytest

from thinshelldemons.errors import DimensionMismatchError
from thinshelldemons.target_map import TargetMap
from thinshelldemons.vertex_vector_array import VertexVectorArray


class TestTargetMap:
    """Test suite for TargetMap."""

    def test_set_all_and_read(self):
        target_map = TargetMap(2)
        target_map.set_all([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])

        assert len(target_map) == 2
        np.testing.assert_array_equal(target_map[1], [4.0, 5.0, 6.0])
        assert 0 in target_map and 1 in target_map
        assert 2 not in target_map and -1 not in target_map
        with pytest.raises(KeyError):
            target_map[2]

    def test_set_all_shape_mismatch(self):
        target_map = TargetMap(2)
        with pytest.raises(ValueError):
            target_map.set_all(np.zeros((3, 3)))

    def test_sealed_map_is_read_only(self):
        target_map = TargetMap(1)
        target_map.set_all([[1.0, 1.0, 1.0]])
        target_map.seal()

        with pytest.raises(RuntimeError):
            target_map.set_all([[0.0, 0.0, 0.0]])
        with pytest.raises(ValueError):
            target_map.as_array()[0, 0] = 5.0

        # Returned points are copies
        point = target_map[0]
        point[0] = 9.0
        np.testing.assert_array_equal(target_map[0], [1.0, 1.0, 1.0])


class TestVertexVectorArray:
    """Test suite for VertexVectorArray."""

    def test_layout_is_vertex_major(self):
        array = VertexVectorArray.from_flat(np.arange(6, dtype=float), 2)

        assert array.number_of_vertices == 2
        np.testing.assert_array_equal(array.vertex(0), [0.0, 1.0, 2.0])
        np.testing.assert_array_equal(array.vertex(1), [3.0, 4.0, 5.0])

    def test_views_share_memory(self):
        array = VertexVectorArray.zeros(2)
        array.set_vertex(1, [7.0, 8.0, 9.0])
        np.testing.assert_array_equal(array.flat, [0, 0, 0, 7, 8, 9])

        array.vectors[0, 2] = 1.5
        assert array.flat[2] == 1.5

    def test_length_mismatch(self):
        with pytest.raises(DimensionMismatchError):
            VertexVectorArray.from_flat(np.zeros(5), 2)

    def test_bounds_checked(self):
        array = VertexVectorArray.zeros(2)
        with pytest.raises(IndexError):
            array.vertex(2)
        with pytest.raises(IndexError):
            array.set_vertex(-1, [0.0, 0.0, 0.0])

    def test_copy_option(self):
        values = np.zeros(3)
        shared = VertexVectorArray.from_flat(values, 1)
        copied = VertexVectorArray.from_flat(values, 1, copy=True)

        values[0] = 4.0
        assert shared.flat[0] == 4.0
        assert copied.flat[0] == 0.0
