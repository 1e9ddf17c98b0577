"""
Placement Policy - Creates, evicts and re-poses placements on surfaces
Capacity-bounded pool with idle-based eviction
"""

import logging
import uuid
import numpy as np
from typing import List, Optional

from ..models.events import (
    CompanionScreenRequested, PlacementCreated, PlacementEvent, PlacementRemoved, PlacementUpdated
)
from ..models.registry import Registry
from ..models.spatial import KEYBOARD_TEMPLATES, UP, ObserverPose, Placement, Surface
from ..utils.config import DetectionSettings
from ..utils.metrics import DetectionMetrics
from .pose_solver import PoseSolver

logger = logging.getLogger(__name__)


class PlacementPolicy:
    """Decides when placements appear on surfaces and when they go away"""

    def __init__(self, settings: DetectionSettings, pose_solver: Optional[PoseSolver] = None,
                 metrics: Optional[DetectionMetrics] = None):
        self.settings = settings
        self.pose_solver = pose_solver or PoseSolver(settings.placement_clearance_height)
        self.metrics = metrics or DetectionMetrics()

    def is_eligible(self, surface: Surface, observer: ObserverPose) -> bool:
        """Confident, large enough, and roughly ahead of the observer"""
        if surface.has_placement:
            return False
        if surface.confidence < self.settings.placement_confidence_threshold:
            return False
        if surface.area < self.settings.min_surface_area:
            return False
        return observer.alignment_to(surface.position) > self.settings.placement_forward_threshold

    def evaluate(self, registry: Registry, observer: Optional[ObserverPose], now: float,
                 events: Optional[List[PlacementEvent]] = None) -> List[PlacementEvent]:
        """
        Place objects on eligible surfaces, in registration order.

        At capacity the least recently used placement is evicted if it has
        been idle longer than the grace period; otherwise creation waits for
        a later tick. Events are appended to ``events`` as each change is
        applied, so a caller keeps them even if a later surface fails.
        """
        if events is None:
            events = []
        if observer is None:
            return events

        for surface in list(registry.surfaces.values()):
            if not self.is_eligible(surface, observer):
                continue

            if registry.at_capacity:
                candidate = registry.oldest_interaction()
                if candidate is None or now - candidate.last_interaction_at <= self.settings.eviction_grace:
                    self.metrics.increment_counter('placements_deferred')
                    logger.debug(f"Placement for {surface.id} deferred, capacity "
                                 f"{self.settings.max_placements} reached")
                    break
                events.extend(self.evict(registry, candidate.id, reason="idle_eviction"))

            events.extend(self._create(registry, surface, now))

        return events

    def _create(self, registry: Registry, surface: Surface, now: float) -> List[PlacementEvent]:
        template = KEYBOARD_TEMPLATES[self.settings.keyboard_template]
        position, rotation = self.pose_solver.solve(surface.position, surface.normal)
        placement = Placement(
            id=f"keyboard-{uuid.uuid4().hex[:12]}",
            surface_id=surface.id,
            position=position,
            rotation=rotation,
            created_at=now,
            last_interaction_at=now,
            sequence=registry.next_sequence(),
            template=template.name,
            width=template.width,
            depth=template.depth,
        )
        registry.add_placement(placement)

        self.metrics.increment_counter('placements_created')
        self.metrics.set_gauge('placements', registry.placement_count)
        logger.info(f"Placed {placement.template} keyboard {placement.id} on {surface.id}")

        return [
            PlacementCreated(
                placement_id=placement.id,
                surface_id=surface.id,
                position=position.copy(),
                rotation=rotation.copy(),
                template=placement.template,
                width=template.width,
                depth=template.depth,
                rows=list(template.rows),
            ),
            CompanionScreenRequested(
                placement_id=placement.id,
                position=position + UP * self.settings.companion_screen_offset,
            ),
        ]

    def evict(self, registry: Registry, placement_id: str, reason: str = "evicted") -> List[PlacementRemoved]:
        placement = registry.remove_placement(placement_id)
        if placement is None:
            return []

        self.metrics.increment_counter('placements_evicted')
        self.metrics.set_gauge('placements', registry.placement_count)
        logger.info(f"Removed placement {placement_id} from {placement.surface_id} ({reason})")
        return [PlacementRemoved(placement_id=placement_id, surface_id=placement.surface_id, reason=reason)]

    def record_interaction(self, registry: Registry, placement_id: str, now: float) -> bool:
        placement = registry.get_placement(placement_id)
        if placement is None:
            return False

        placement.last_interaction_at = now
        surface = registry.get_surface(placement.surface_id)
        if surface is not None:
            surface.last_interaction_at = now
        return True

    def reposition(self, registry: Registry) -> List[PlacementUpdated]:
        """Follow surfaces whose estimate moved since the placement was posed"""
        events = []
        for placement in registry.placements.values():
            surface = registry.get_surface(placement.surface_id)
            if surface is None:
                continue

            position, rotation = self.pose_solver.solve(surface.position, surface.normal)
            moved = np.linalg.norm(position - placement.position) > self.settings.reposition_epsilon
            # q and -q are the same rotation
            turned = 1.0 - abs(float(np.dot(rotation, placement.rotation))) > 1e-4
            if not (moved or turned):
                continue

            placement.position = position
            placement.rotation = rotation
            events.append(PlacementUpdated(
                placement_id=placement.id,
                surface_id=surface.id,
                position=position.copy(),
                rotation=rotation.copy(),
            ))
        return events

    def advance_animation(self, registry: Registry, elapsed: float):
        """Advance each placement's appear progress by one tick"""
        if elapsed <= 0:
            return
        step = elapsed / self.settings.placement_appear
        for placement in registry.placements.values():
            if placement.appear_progress < 1.0:
                placement.appear_progress = min(1.0, placement.appear_progress + step)
