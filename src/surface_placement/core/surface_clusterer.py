"""
Surface Clusterer - Groups samples and mesh vertices into candidate surfaces
Greedy single-pass clustering for hit-test samples, region growing for meshes
"""

import logging
import math
import numpy as np
from typing import List, Optional, Sequence

from ..models.spatial import Cluster, Sample, normalize
from ..utils.config import DetectionSettings

logger = logging.getLogger(__name__)


class MeshRegionJob:
    """
    Coplanar region growing over one mesh, resumable across ticks.

    Faces are consecutive vertex triples. For every horizontal face whose
    first vertex is still free, all free vertices within ``planar_tolerance``
    of the face plane join its group. Each step only touches unassigned
    vertices and is vectorised, and ``step`` handles a bounded number of
    faces so a large mesh is spread over several ticks.
    """

    def __init__(self, vertices: np.ndarray, settings: DetectionSettings, token: Optional[int] = None):
        self.settings = settings
        self.token = token
        self.vertices = self._limit_vertices(vertices)
        self.face_count = len(self.vertices) // 3
        self.assigned = np.zeros(len(self.vertices), dtype=bool)
        self.cursor = 0
        self.groups: List[Cluster] = []

    def _limit_vertices(self, vertices: np.ndarray) -> np.ndarray:
        vertices = np.asarray(vertices, dtype=float).reshape(-1, 3)
        usable = (len(vertices) // 3) * 3
        vertices = vertices[:usable]

        max_vertices = self.settings.max_mesh_vertices
        if len(vertices) <= max_vertices:
            return vertices

        faces = vertices.reshape(-1, 3, 3)
        max_faces = max(1, max_vertices // 3)
        stride = math.ceil(len(faces) / max_faces)
        kept = faces[::stride]
        logger.info(f"Mesh downsampled from {len(faces)} to {len(kept)} faces")
        return kept.reshape(-1, 3)

    @property
    def done(self) -> bool:
        return self.cursor >= self.face_count

    def step(self, max_faces: Optional[int] = None) -> bool:
        """Process the next batch of faces; returns True once every face is visited"""
        budget = max_faces or self.settings.mesh_faces_per_tick
        end = min(self.cursor + budget, self.face_count)

        for face_index in range(self.cursor, end):
            base = face_index * 3
            if self.assigned[base]:
                continue

            v0, v1, v2 = self.vertices[base:base + 3]
            normal = normalize(np.cross(v1 - v0, v2 - v0))
            if normal is None:
                continue
            if abs(normal[1]) <= self.settings.horizontal_normal_threshold:
                continue
            if normal[1] < 0:
                normal = -normal

            free = ~self.assigned
            offsets = np.abs((self.vertices - v0) @ normal)
            members = free & (offsets < self.settings.planar_tolerance)
            if not members.any():
                continue

            self.assigned |= members
            self.groups.append(self._group_cluster(self.vertices[members], normal))

        self.cursor = end
        return self.done

    @staticmethod
    def _group_cluster(points: np.ndarray, normal: np.ndarray) -> Cluster:
        count = len(points)
        return Cluster(
            centroid=points.mean(axis=0),
            bbox_min=points.min(axis=0),
            bbox_max=points.max(axis=0),
            member_count=count,
            position_sum=points.sum(axis=0),
            normal_sum=normal * count,
        )


class SurfaceClusterer:
    """Builds transient clusters from the current sample window"""

    def __init__(self, settings: DetectionSettings):
        self.settings = settings

    def cluster(self, samples: Sequence[Sample]) -> List[Cluster]:
        """
        Greedy nearest-cluster assignment in one pass.

        Each sample joins the first cluster whose centroid lies closer than
        ``merge_threshold``; otherwise it seeds a new cluster. Because the
        centroid is the running average ``(centroid + point) / 2`` it is
        biased toward recent samples, which is accepted for a cheap
        real-time pass. Samples that are all within the threshold of each
        other always end up in a single cluster, whatever their order.
        """
        threshold = self.settings.merge_threshold
        clusters: List[Cluster] = []

        for sample in samples:
            for cluster in clusters:
                if np.linalg.norm(sample.position - cluster.centroid) < threshold:
                    cluster.add(sample.position, sample.normal)
                    break
            else:
                clusters.append(Cluster.seed(sample.position, sample.normal))

        return clusters

    def start_mesh_job(self, vertices: np.ndarray, token: Optional[int] = None) -> MeshRegionJob:
        return MeshRegionJob(vertices, self.settings, token=token)

    def grow_mesh_regions(self, vertices: np.ndarray) -> List[Cluster]:
        """Run region growing to completion; for small meshes and tests"""
        job = self.start_mesh_job(vertices)
        while not job.step():
            pass
        return job.groups
