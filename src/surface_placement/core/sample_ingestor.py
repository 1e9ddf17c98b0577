"""
Sample Ingestor - Normalizes hit-test, mesh and raycast inputs into samples
Keeps only near-horizontal observations
"""

import logging
import numpy as np
from typing import Iterable, List, Optional, Sequence, Tuple
from scipy.spatial.transform import Rotation

from ..models.events import HitTestResult, SceneMeshUpdate
from ..models.spatial import Sample, normalize
from ..utils.config import DetectionSettings
from ..utils.metrics import DetectionMetrics

logger = logging.getLogger(__name__)

DOWN = np.array([0.0, -1.0, 0.0])


class SceneGeometry:
    """
    Known scene geometry as a triangle soup, used for raycast fallback
    when the platform offers no native hit-testing.
    """

    def __init__(self, triangles: Optional[np.ndarray] = None):
        if triangles is None:
            triangles = np.zeros((0, 3, 3))
        triangles = np.asarray(triangles, dtype=float)
        if triangles.ndim != 3 or triangles.shape[1:] != (3, 3):
            raise ValueError("Triangles must have shape (N, 3, 3)")
        self.triangles = triangles

    @classmethod
    def from_boxes(cls, boxes: Iterable[Tuple[Sequence[float], Sequence[float]]]) -> "SceneGeometry":
        """Build geometry from axis-aligned boxes given as (center, size)"""
        triangles = []
        for center, size in boxes:
            triangles.extend(_box_triangles(np.asarray(center, dtype=float),
                                            np.asarray(size, dtype=float)))
        return cls(np.array(triangles) if triangles else None)

    def __len__(self) -> int:
        return len(self.triangles)

    def raycast_down(self, origin: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Nearest hit of a downward ray; returns (point, normal) or None"""
        if len(self.triangles) == 0:
            return None

        v0 = self.triangles[:, 0]
        edge1 = self.triangles[:, 1] - v0
        edge2 = self.triangles[:, 2] - v0

        h = np.cross(DOWN, edge2)
        a = np.einsum('ij,ij->i', edge1, h)
        parallel = np.abs(a) < 1e-12
        f = np.where(parallel, 0.0, 1.0 / np.where(parallel, 1.0, a))

        s = origin - v0
        u = f * np.einsum('ij,ij->i', s, h)
        q = np.cross(s, edge1)
        v = f * (q @ DOWN)
        t = f * np.einsum('ij,ij->i', edge2, q)

        hit_mask = (~parallel) & (u >= 0.0) & (v >= 0.0) & (u + v <= 1.0) & (t > 1e-9)
        if not hit_mask.any():
            return None

        candidates = np.where(hit_mask)[0]
        nearest = candidates[np.argmin(t[candidates])]

        point = origin + DOWN * t[nearest]
        normal = normalize(np.cross(edge1[nearest], edge2[nearest]))
        if normal is None:
            return None
        if np.dot(normal, DOWN) > 0:
            normal = -normal
        return point, normal


def _box_triangles(center: np.ndarray, size: np.ndarray) -> List[np.ndarray]:
    hx, hy, hz = size / 2.0
    corners = np.array([
        [-hx, -hy, -hz], [hx, -hy, -hz], [hx, hy, -hz], [-hx, hy, -hz],
        [-hx, -hy, hz], [hx, -hy, hz], [hx, hy, hz], [-hx, hy, hz],
    ]) + center
    faces = [
        (0, 1, 2), (0, 2, 3),  # back
        (4, 6, 5), (4, 7, 6),  # front
        (3, 2, 6), (3, 6, 7),  # top
        (0, 5, 1), (0, 4, 5),  # bottom
        (0, 3, 7), (0, 7, 4),  # left
        (1, 5, 6), (1, 6, 2),  # right
    ]
    return [corners[list(face)] for face in faces]


class SampleIngestor:
    """
    Converts raw sensor payloads into ``Sample`` objects.
    Malformed or vertical observations are dropped without raising.
    """

    def __init__(self, settings: DetectionSettings, metrics: Optional[DetectionMetrics] = None):
        self.settings = settings
        self.metrics = metrics or DetectionMetrics()

    def is_horizontal(self, normal: np.ndarray) -> bool:
        return abs(float(normal[1])) > self.settings.horizontal_normal_threshold

    def from_hit_test(self, result: HitTestResult, now: float) -> List[Sample]:
        """Samples from one frame of AR hit-test results"""
        samples = []
        for hit in result.hits or []:
            sample = self._make_sample(hit, now)
            if sample is None:
                continue
            if not self.is_horizontal(sample.normal):
                self.metrics.increment_counter('samples_rejected_vertical')
                continue
            samples.append(sample)

        self.metrics.increment_counter('samples_ingested', len(samples))
        return samples

    def _make_sample(self, hit, now: float) -> Optional[Sample]:
        try:
            if isinstance(hit, dict):
                point, normal = hit['point'], hit['normal']
            else:
                point, normal = hit.point, hit.normal
            return Sample(position=point, normal=normal, captured_at=now)
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Dropping malformed hit: {e}")
            self.metrics.increment_counter('samples_malformed')
            return None

    def from_mesh(self, update: SceneMeshUpdate) -> np.ndarray:
        """World-space vertex array (N, 3) from a scene mesh update"""
        empty = np.zeros((0, 3))
        try:
            flat = np.asarray(update.vertices, dtype=float).reshape(-1)
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropping malformed mesh payload: {e}")
            self.metrics.increment_counter('mesh_updates_malformed')
            return empty

        if flat.size == 0:
            return empty
        if flat.size % 3 != 0:
            logger.debug(f"Dropping mesh payload with {flat.size} values (not xyz triples)")
            self.metrics.increment_counter('mesh_updates_malformed')
            return empty

        local = flat.reshape(-1, 3)

        try:
            position = np.asarray(update.pose.position, dtype=float).reshape(3)
            rotation = Rotation.from_quat(np.asarray(update.pose.rotation, dtype=float).reshape(4))
        except (TypeError, ValueError) as e:
            logger.debug(f"Dropping mesh payload with invalid pose: {e}")
            self.metrics.increment_counter('mesh_updates_malformed')
            return empty

        world = rotation.apply(local) + position

        valid_mask = np.isfinite(world).all(axis=1)
        removed_count = len(world) - int(valid_mask.sum())
        if removed_count > 0:
            logger.debug(f"Removed {removed_count} invalid mesh vertices")

        return world[valid_mask]

    def from_raycast(self, observer_position: np.ndarray, scene: Optional[SceneGeometry],
                     now: float) -> List[Sample]:
        """Fallback samples from a grid of downward rays around the observer"""
        if scene is None or len(scene) == 0:
            return []

        grid_size = self.settings.raycast_grid_size
        spacing = self.settings.raycast_grid_spacing
        min_height = self.settings.floor_height + self.settings.min_height_above_floor

        samples = []
        for x in range(-grid_size, grid_size + 1):
            for z in range(-grid_size, grid_size + 1):
                # Directly under the observer is usually the floor or their own body
                if x == 0 and z == 0:
                    continue

                origin = np.array([
                    observer_position[0] + x * spacing,
                    observer_position[1],
                    observer_position[2] + z * spacing,
                ])
                hit = scene.raycast_down(origin)
                if hit is None:
                    continue

                point, normal = hit
                if point[1] < min_height:
                    continue
                if not self.is_horizontal(normal):
                    self.metrics.increment_counter('samples_rejected_vertical')
                    continue
                samples.append(Sample(position=point, normal=normal, captured_at=now))

        self.metrics.increment_counter('raycast_samples', len(samples))
        return samples
