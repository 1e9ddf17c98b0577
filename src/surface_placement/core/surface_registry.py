"""
Surface Registry - Promotion, confidence tracking and expiry of surfaces
"""

import hashlib
import logging
import numpy as np
from typing import List, Optional, Sequence, Set

from ..models.events import PlacementRemoved
from ..models.registry import Registry
from ..models.spatial import Cluster, Surface, SurfaceSource, normalize
from ..utils.config import DetectionSettings
from ..utils.metrics import DetectionMetrics

logger = logging.getLogger(__name__)


class SurfaceRegistry:
    """
    Turns qualifying clusters into persistent surfaces.

    Surface ids come from the source and the mean position quantized to
    ``id_quantization`` (1 cm by default), so the same physical surface maps
    to the same id across passes. A surface whose mean drifts across a bucket
    boundary would otherwise split in two; instead a cluster with an unknown
    id that lies within ``merge_threshold`` of an existing surface of the
    same source is merged into it and the original id is kept. Hit-test and
    mesh observations of one table stay separate surfaces.
    """

    def __init__(self, settings: DetectionSettings, metrics: Optional[DetectionMetrics] = None):
        self.settings = settings
        self.metrics = metrics or DetectionMetrics()

    def surface_id_for(self, position: np.ndarray, source: SurfaceSource) -> str:
        buckets = np.round(np.asarray(position) / self.settings.id_quantization).astype(int)
        key = ":".join([source.value] + [str(int(b)) for b in buckets])
        return "surface-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]

    def qualifies(self, cluster: Cluster, source: SurfaceSource) -> bool:
        min_members = (self.settings.min_mesh_members if source == SurfaceSource.MESH
                       else self.settings.min_hit_test_members)
        return (cluster.member_count >= min_members and
                cluster.area >= self.settings.min_surface_area)

    def initial_confidence(self, cluster: Cluster, source: SurfaceSource) -> float:
        if source == SurfaceSource.MESH:
            return self.settings.mesh_initial_confidence
        return min(cluster.member_count / 20.0, 1.0)

    def ttl_for(self, source: SurfaceSource) -> float:
        if source == SurfaceSource.MESH:
            return self.settings.mesh_ttl
        return self.settings.hit_test_ttl

    def apply_clusters(self, registry: Registry, clusters: Sequence[Cluster],
                       source: SurfaceSource, now: float) -> List[Surface]:
        """
        Promote or re-detect surfaces from one clustering pass.
        A surface is credited at most once per pass.
        """
        touched: Set[str] = set()
        result = []

        for cluster in clusters:
            if not self.qualifies(cluster, source):
                continue

            position = cluster.mean_position
            surface_id = self.surface_id_for(position, source)
            target = registry.get_surface(surface_id)
            if target is None:
                target = self._find_nearby(registry, position, source)

            if target is not None:
                if target.id in touched:
                    continue
                self._redetect(target, cluster, now)
                touched.add(target.id)
                result.append(target)
                continue

            surface = Surface(
                id=surface_id,
                position=position,
                normal=cluster.mean_normal,
                width=cluster.width,
                depth=cluster.depth,
                area=cluster.area,
                confidence=self.initial_confidence(cluster, source),
                source=source,
                last_seen_at=now,
                created_at=now,
            )
            registry.add_surface(surface)
            touched.add(surface.id)
            result.append(surface)

            self.metrics.increment_counter('surfaces_created')
            logger.info(f"New surface detected: {surface.id}, area: {surface.area:.2f}m², "
                        f"confidence: {surface.confidence:.2f}, source: {source.value}")

        self.metrics.set_gauge('surfaces', len(registry.surfaces))
        return result

    def _find_nearby(self, registry: Registry, position: np.ndarray,
                     source: SurfaceSource) -> Optional[Surface]:
        best = None
        best_distance = self.settings.merge_threshold
        for surface in registry.surfaces.values():
            if surface.source != source:
                continue
            distance = float(np.linalg.norm(surface.position - position))
            if distance < best_distance:
                best = surface
                best_distance = distance
        return best

    def _redetect(self, surface: Surface, cluster: Cluster, now: float):
        """Fold a new observation into an existing surface"""
        weight = 1.0 / (surface.detection_count + 1)
        surface.position = surface.position + (cluster.mean_position - surface.position) * weight

        blended = surface.normal + (cluster.mean_normal - surface.normal) * weight
        normal = normalize(blended)
        if normal is not None:
            surface.normal = normal

        surface.width = cluster.width
        surface.depth = cluster.depth
        surface.area = cluster.area
        surface.confidence = min(1.0, surface.confidence + self.settings.confidence_step)
        surface.last_seen_at = now
        surface.detection_count += 1

        self.metrics.increment_counter('surface_redetections')
        logger.debug(f"Surface {surface.id} re-detected, confidence {surface.confidence:.2f}")

    def sweep(self, registry: Registry, now: float) -> List[PlacementRemoved]:
        """Expire unseen surfaces and remove their placements in the same pass"""
        events = []
        expired = [
            surface_id for surface_id, surface in registry.surfaces.items()
            if now - surface.last_seen_at > self.ttl_for(surface.source)
        ]

        for surface_id in expired:
            surface, placement = registry.remove_surface(surface_id)
            if placement is not None:
                events.append(PlacementRemoved(
                    placement_id=placement.id,
                    surface_id=surface_id,
                    reason="surface_expired",
                ))
                self.metrics.increment_counter('placements_expired')
            logger.info(f"Surface {surface_id} expired after "
                        f"{now - surface.last_seen_at:.1f}s unseen")

        if expired:
            self.metrics.increment_counter('surfaces_expired', len(expired))
            self.metrics.set_gauge('surfaces', len(registry.surfaces))
        return events
