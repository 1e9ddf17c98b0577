"""
Surface Placement - Registry
Single owner of all surfaces and placements
"""

import logging
import threading
from typing import Dict, List, Optional, Tuple

from .spatial import Surface, Placement

logger = logging.getLogger(__name__)


class CapacityExceededError(Exception):
    """Raised when a placement would exceed the configured capacity"""


class Registry:
    """
    Owned store of surfaces and placements.

    All mutation goes through this class so the linking invariants hold:
    a surface owns at most one placement, every placement has exactly one
    owning surface, and the placement count never exceeds ``max_placements``.
    ``lock`` is the single writer lock for hosts that touch the registry
    from more than one thread.
    """

    def __init__(self, max_placements: int):
        self.max_placements = max_placements
        self.surfaces: Dict[str, Surface] = {}
        self.placements: Dict[str, Placement] = {}
        self.lock = threading.RLock()
        self._placement_sequence = 0

    # Surfaces

    def get_surface(self, surface_id: str) -> Optional[Surface]:
        return self.surfaces.get(surface_id)

    def add_surface(self, surface: Surface) -> None:
        existing = self.surfaces.get(surface.id)
        if existing is not None and existing.has_placement:
            # Replacing the record must not orphan its placement
            surface.has_placement = True
            surface.placement_id = existing.placement_id
        self.surfaces[surface.id] = surface

    def remove_surface(self, surface_id: str) -> Tuple[Optional[Surface], Optional[Placement]]:
        """Remove a surface together with the placement it owns"""
        surface = self.surfaces.pop(surface_id, None)
        if surface is None:
            return None, None

        placement = None
        if surface.has_placement and surface.placement_id:
            placement = self.placements.pop(surface.placement_id, None)
        return surface, placement

    # Placements

    def next_sequence(self) -> int:
        self._placement_sequence += 1
        return self._placement_sequence

    @property
    def placement_count(self) -> int:
        return len(self.placements)

    @property
    def at_capacity(self) -> bool:
        return len(self.placements) >= self.max_placements

    def get_placement(self, placement_id: str) -> Optional[Placement]:
        return self.placements.get(placement_id)

    def add_placement(self, placement: Placement) -> None:
        surface = self.surfaces.get(placement.surface_id)
        if surface is None:
            raise KeyError(f"Unknown surface {placement.surface_id}")
        if surface.has_placement:
            raise ValueError(f"Surface {surface.id} already owns placement {surface.placement_id}")
        if self.at_capacity:
            raise CapacityExceededError(
                f"Placement capacity of {self.max_placements} reached"
            )

        self.placements[placement.id] = placement
        surface.has_placement = True
        surface.placement_id = placement.id
        surface.last_interaction_at = placement.last_interaction_at

    def remove_placement(self, placement_id: str) -> Optional[Placement]:
        placement = self.placements.pop(placement_id, None)
        if placement is None:
            return None

        surface = self.surfaces.get(placement.surface_id)
        if surface is not None and surface.placement_id == placement_id:
            surface.has_placement = False
            surface.placement_id = None
        return placement

    def oldest_interaction(self) -> Optional[Placement]:
        """Placement with the oldest last interaction; creation order breaks ties"""
        if not self.placements:
            return None
        return min(self.placements.values(), key=lambda p: (p.last_interaction_at, p.sequence))

    def active_placements(self) -> List[Placement]:
        return [p for p in self.placements.values() if p.is_active]

    # Bulk

    def clear(self) -> List[Placement]:
        """Drop every surface and placement; returns the removed placements"""
        removed = list(self.placements.values())
        self.placements.clear()
        self.surfaces.clear()
        return removed

    def snapshot(self) -> Dict[str, List[dict]]:
        """Consistent copy of the registry for readers"""
        with self.lock:
            return {
                'surfaces': [s.to_dict() for s in self.surfaces.values()],
                'placements': [p.to_dict() for p in self.placements.values()],
            }

    def check_invariants(self) -> List[str]:
        """Describe any broken linking invariant; an empty list means consistent"""
        problems = []
        if len(self.placements) > self.max_placements:
            problems.append(f"{len(self.placements)} placements exceed capacity {self.max_placements}")

        for placement in self.placements.values():
            surface = self.surfaces.get(placement.surface_id)
            if surface is None:
                problems.append(f"Placement {placement.id} has no surface")
            elif surface.placement_id != placement.id or not surface.has_placement:
                problems.append(f"Surface {surface.id} does not link placement {placement.id}")

        for surface in self.surfaces.values():
            if surface.has_placement and surface.placement_id not in self.placements:
                problems.append(f"Surface {surface.id} links missing placement {surface.placement_id}")

        if len(self.active_placements()) > 1:
            problems.append("More than one active placement")
        return problems
