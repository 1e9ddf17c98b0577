"""
Pose Solver - Orientation and offset for objects laid on a surface
"""

import numpy as np
from typing import Tuple
from scipy.spatial.transform import Rotation

from ..models.spatial import UP, normalize

IDENTITY_QUATERNION = np.array([0.0, 0.0, 0.0, 1.0])


class PoseSolver:
    """
    Pure geometry helpers for placing objects flush against a surface.
    Quaternions use the scipy [x, y, z, w] convention.
    """

    def __init__(self, clearance_height: float = 0.02):
        self.clearance_height = clearance_height

    @staticmethod
    def rotation_from_normal(normal) -> np.ndarray:
        """Shortest-arc rotation taking the +Y axis onto ``normal``"""
        n = normalize(np.asarray(normal, dtype=float))
        if n is None:
            return IDENTITY_QUATERNION.copy()

        d = float(np.dot(UP, n))
        if d < -1.0 + 1e-9:
            # Antiparallel: any axis perpendicular to +Y works
            return np.array([1.0, 0.0, 0.0, 0.0])

        axis = np.cross(UP, n)
        q = np.array([axis[0], axis[1], axis[2], 1.0 + d])
        return q / np.linalg.norm(q)

    @staticmethod
    def offset_along_normal(point, normal, distance: float) -> np.ndarray:
        point = np.asarray(point, dtype=float)
        n = normalize(np.asarray(normal, dtype=float))
        if n is None:
            n = UP
        return point + n * distance

    def solve(self, position, normal) -> Tuple[np.ndarray, np.ndarray]:
        """Return (position, rotation) for an object resting on the surface"""
        return (
            self.offset_along_normal(position, normal, self.clearance_height),
            self.rotation_from_normal(normal),
        )

    @staticmethod
    def to_euler_degrees(quaternion) -> np.ndarray:
        """XYZ Euler angles in degrees, the form most scene graphs accept"""
        return Rotation.from_quat(quaternion).as_euler('xyz', degrees=True)

    @staticmethod
    def rotate(quaternion, vector) -> np.ndarray:
        return Rotation.from_quat(quaternion).apply(np.asarray(vector, dtype=float))
