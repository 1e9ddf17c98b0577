"""
Visibility Gate - Per-frame visibility and active placement selection
"""

import logging
from typing import List, Optional

from ..models.events import PlacementActiveChanged, PlacementEvent, PlacementVisibilityChanged
from ..models.registry import Registry
from ..models.spatial import ObserverPose
from ..utils.config import DetectionSettings
from ..utils.metrics import DetectionMetrics

logger = logging.getLogger(__name__)


class VisibilityGate:
    """
    Decides which placements the observer can see and which single one is
    active. A placement is visible when it is ahead of the observer
    (alignment above the visibility threshold) and within reach; the active
    one is the nearest visible placement the observer is looking at
    directly, with creation order breaking ties.

    Thresholds are hard by default, so an observer hovering on a boundary
    can toggle state every frame. ``visibility_hysteresis`` widens each
    threshold for placements already in that state.
    """

    def __init__(self, settings: DetectionSettings, metrics: Optional[DetectionMetrics] = None):
        self.settings = settings
        self.metrics = metrics or DetectionMetrics()

    def evaluate(self, registry: Registry, observer: Optional[ObserverPose]) -> List[PlacementEvent]:
        if observer is None:
            return []

        hysteresis = self.settings.visibility_hysteresis
        visible = {}
        active_id = None
        best_distance = float('inf')

        for placement in sorted(registry.placements.values(), key=lambda p: p.sequence):
            distance = observer.distance_to(placement.position)
            alignment = observer.alignment_to(placement.position)

            margin = hysteresis if placement.is_visible else 0.0
            is_visible = (alignment > self.settings.visibility_alignment_threshold - margin and
                          distance < self.settings.visibility_max_distance + margin)
            visible[placement.id] = is_visible
            if not is_visible:
                continue

            active_margin = hysteresis if placement.is_active else 0.0
            if alignment > self.settings.active_alignment_threshold - active_margin and distance < best_distance:
                active_id = placement.id
                best_distance = distance

        events: List[PlacementEvent] = []
        activated = []
        for placement in registry.placements.values():
            if placement.is_visible != visible[placement.id]:
                placement.is_visible = visible[placement.id]
                events.append(PlacementVisibilityChanged(placement_id=placement.id,
                                                         is_visible=placement.is_visible))

            should_be_active = placement.id == active_id
            if placement.is_active and not should_be_active:
                placement.is_active = False
                events.append(PlacementActiveChanged(placement_id=placement.id, is_active=False))
            elif should_be_active and not placement.is_active:
                activated.append(placement)

        # Deactivations go out before the activation so consumers never see two active
        for placement in activated:
            placement.is_active = True
            events.append(PlacementActiveChanged(placement_id=placement.id, is_active=True))
            logger.debug(f"Placement {placement.id} is now active")

        self.metrics.set_gauge('visible_placements', sum(1 for v in visible.values() if v))
        return events
