"""Tests for pose_solver module."""
import numpy as np
import pytest

from surface_placement.core.pose_solver import PoseSolver


class TestRotationFromNormal:
    """Shortest-arc rotation from +Y onto a surface normal."""

    def test_up_normal_gives_identity(self):
        q = PoseSolver.rotation_from_normal([0.0, 1.0, 0.0])
        np.testing.assert_allclose(q, [0.0, 0.0, 0.0, 1.0], atol=1e-12)

    @pytest.mark.parametrize("normal", [
        [1.0, 0.0, 0.0],
        [0.0, 0.0, 1.0],
        [0.3, 0.9, -0.2],
        [0.0, 0.7071, 0.7071],
    ])
    def test_rotation_maps_up_onto_normal(self, normal):
        q = PoseSolver.rotation_from_normal(normal)
        expected = np.asarray(normal) / np.linalg.norm(normal)

        assert np.linalg.norm(q) == pytest.approx(1.0)
        np.testing.assert_allclose(PoseSolver.rotate(q, [0.0, 1.0, 0.0]), expected, atol=1e-9)

    def test_antiparallel_normal_flips_up(self):
        q = PoseSolver.rotation_from_normal([0.0, -1.0, 0.0])
        np.testing.assert_allclose(PoseSolver.rotate(q, [0.0, 1.0, 0.0]), [0.0, -1.0, 0.0], atol=1e-9)

    def test_zero_normal_degrades_to_identity(self):
        q = PoseSolver.rotation_from_normal([0.0, 0.0, 0.0])
        np.testing.assert_allclose(q, [0.0, 0.0, 0.0, 1.0])

    def test_unnormalized_normal_is_accepted(self):
        q1 = PoseSolver.rotation_from_normal([0.0, 5.0, 5.0])
        q2 = PoseSolver.rotation_from_normal([0.0, 1.0, 1.0])
        np.testing.assert_allclose(q1, q2, atol=1e-12)


class TestSolve:
    """Position offset along the normal plus orientation."""

    def test_default_clearance_lifts_by_two_centimeters(self):
        solver = PoseSolver()
        position, rotation = solver.solve([0.0, 0.75, -1.0], [0.0, 1.0, 0.0])

        np.testing.assert_allclose(position, [0.0, 0.77, -1.0])
        np.testing.assert_allclose(rotation, [0.0, 0.0, 0.0, 1.0], atol=1e-12)

    def test_offset_follows_tilted_normal(self):
        solver = PoseSolver(clearance_height=0.1)
        normal = np.array([1.0, 1.0, 0.0])
        position, _ = solver.solve([0.0, 0.0, 0.0], normal)

        np.testing.assert_allclose(position, normal / np.linalg.norm(normal) * 0.1)

    def test_euler_degrees_for_renderers(self):
        q = PoseSolver.rotation_from_normal([1.0, 0.0, 0.0])
        angles = PoseSolver.to_euler_degrees(q)
        # +Y onto +X is a -90 degree turn about Z
        np.testing.assert_allclose(angles, [0.0, 0.0, -90.0], atol=1e-6)
