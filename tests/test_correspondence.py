#!/usr/bin/env python
"""
Tests for the closest point correspondence strategies.
"""

import logging

import numpy as np
import pytest

from thinshelldemons.correspondence import (
    BruteForceCorrespondenceBuilder,
    CorrespondenceBuilderBase,
    KDTreeCorrespondenceBuilder,
    create_correspondence_builder,
)


@pytest.fixture(params=["brute_force", "kdtree"])
def builder(request):
    """Create each correspondence strategy."""
    return create_correspondence_builder(request.param, log_level=logging.WARNING)


class TestCorrespondence:
    """Test suite for correspondence builders."""

    def test_nearest_of_two_points(self, builder):
        """Test that (1,0,0) is matched to (0,0,0) rather than (10,0,0)."""
        fixed = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
        query = np.array([[1.0, 0.0, 0.0]])

        np.testing.assert_array_equal(builder.find_closest(fixed, query), [0])
        target_map = builder.build(fixed, query)
        np.testing.assert_array_equal(target_map[0], [0.0, 0.0, 0.0])

    def test_ties_choose_first_fixed_vertex(self, builder):
        """Test that equidistant fixed vertices resolve to the lowest identifier."""
        fixed = np.array(
            [
                [5.0, 5.0, 5.0],
                [-1.0, 0.0, 0.0],
                [1.0, 0.0, 0.0],
                [0.0, 1.0, 0.0],
            ]
        )
        query = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0]])

        np.testing.assert_array_equal(builder.find_closest(fixed, query), [1, 1])

    def test_duplicate_fixed_vertices(self, builder):
        """Test that duplicated fixed vertices resolve to the first copy."""
        fixed = np.array([[3.0, 0.0, 0.0], [1.0, 1.0, 1.0], [1.0, 1.0, 1.0]])
        query = np.array([[1.0, 1.0, 1.1]])

        np.testing.assert_array_equal(builder.find_closest(fixed, query), [1])

    def test_strategies_agree_on_random_points(self):
        """Test that brute force and k-d tree searches give identical results."""
        rng = np.random.default_rng(0)
        # Integer grid coordinates produce many exact ties
        fixed = rng.integers(0, 6, size=(400, 3)).astype(float)
        query = rng.integers(0, 6, size=(300, 3)).astype(float) + 0.5

        brute = BruteForceCorrespondenceBuilder(log_level=logging.WARNING)
        kdtree = KDTreeCorrespondenceBuilder(log_level=logging.WARNING)

        np.testing.assert_array_equal(
            brute.find_closest(fixed, query), kdtree.find_closest(fixed, query)
        )

    def test_chunking_does_not_change_result(self):
        """Test that block size only affects memory, not the result."""
        rng = np.random.default_rng(1)
        fixed = rng.normal(size=(250, 3))
        query = rng.normal(size=(97, 3))

        whole = BruteForceCorrespondenceBuilder(log_level=logging.WARNING)
        chunked = BruteForceCorrespondenceBuilder(chunk_size=10, log_level=logging.WARNING)

        np.testing.assert_array_equal(
            whole.find_closest(fixed, query), chunked.find_closest(fixed, query)
        )

    def test_chunked_scan_reports_progress(self, monkeypatch):
        """Test that every block except the last logs its progress."""
        rng = np.random.default_rng(4)
        fixed = rng.normal(size=(20, 3))
        query = rng.normal(size=(25, 3))

        chunked = BruteForceCorrespondenceBuilder(chunk_size=10, log_level=logging.WARNING)
        reported = []
        monkeypatch.setattr(
            chunked,
            "log_progress",
            lambda current, total, prefix="Progress": reported.append((current, total)),
        )
        chunked.find_closest(fixed, query)

        assert reported == [(10, 25), (20, 25)]

    def test_matches_linear_scan(self):
        """Test against an explicit scan keeping strictly smaller distances."""
        rng = np.random.default_rng(2)
        fixed = rng.integers(-3, 3, size=(60, 3)).astype(float)
        query = rng.integers(-3, 3, size=(40, 3)).astype(float)

        expected = []
        for point in query:
            minimum_distance = np.inf
            closest = -1
            for identifier, fixed_point in enumerate(fixed):
                distance = float(((fixed_point - point) ** 2).sum())
                if distance < minimum_distance:
                    minimum_distance = distance
                    closest = identifier
            expected.append(closest)

        brute = BruteForceCorrespondenceBuilder(chunk_size=7, log_level=logging.WARNING)
        np.testing.assert_array_equal(brute.find_closest(fixed, query), expected)

    def test_build_returns_sealed_map(self, builder):
        """Test that the built target map is read-only."""
        fixed = np.array([[0.0, 0.0, 0.0], [10.0, 0.0, 0.0]])
        query = np.array([[1.0, 0.0, 0.0], [9.0, 0.0, 0.0]])

        target_map = builder.build(fixed, query)
        assert len(target_map) == 2
        assert target_map.is_sealed
        np.testing.assert_array_equal(target_map[1], [10.0, 0.0, 0.0])
        with pytest.raises(RuntimeError):
            target_map.set_all(np.zeros((2, 3)))

    def test_empty_fixed_points(self, builder):
        """Test that an empty fixed mesh is rejected."""
        with pytest.raises(ValueError):
            builder.find_closest(np.zeros((0, 3)), np.zeros((1, 3)))

    def test_unknown_method(self):
        """Test that unknown strategy names are rejected."""
        with pytest.raises(ValueError, match="Unknown correspondence method"):
            create_correspondence_builder("octree")

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            BruteForceCorrespondenceBuilder(chunk_size=0)

    def test_base_class_is_abstract(self):
        with pytest.raises(NotImplementedError):
            CorrespondenceBuilderBase(log_level=logging.WARNING).find_closest(
                np.zeros((1, 3)), np.zeros((1, 3))
            )
