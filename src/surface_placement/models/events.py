"""
Surface Placement - Event Models
Inbound sensor events and outbound placement events
"""

import numpy as np
from typing import Dict, Any, List, Optional, Sequence, Union
from dataclasses import dataclass, field, fields

from .spatial import ObserverPose


# Inbound

@dataclass
class Hit:
    """Single AR hit-test result; values are validated by the ingestor"""
    point: Sequence[float]
    normal: Sequence[float]


@dataclass
class HitTestResult:
    hits: List[Hit] = field(default_factory=list)
    type: str = field(default="hit_test", init=False)


@dataclass
class MeshPose:
    """Pose of a scene mesh; rotation is an [x, y, z, w] quaternion"""
    position: Sequence[float] = (0.0, 0.0, 0.0)
    rotation: Sequence[float] = (0.0, 0.0, 0.0, 1.0)


@dataclass
class SceneMeshUpdate:
    """Scene-understanding mesh as flat xyz triples in mesh-local space"""
    pose: MeshPose = field(default_factory=MeshPose)
    vertices: Sequence[float] = field(default_factory=list)
    request_token: Optional[int] = None
    type: str = field(default="mesh_update", init=False)


@dataclass
class ToggleDetection:
    enabled: bool
    type: str = field(default="toggle_detection", init=False)


@dataclass
class ObserverPoseUpdate:
    pose: ObserverPose
    type: str = field(default="observer_pose", init=False)


SensorEvent = Union[HitTestResult, SceneMeshUpdate, ToggleDetection, ObserverPoseUpdate]


# Outbound

def _listify(value) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    return value


@dataclass
class PlacementEventBase:
    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-ready dictionary"""
        return {f.name: _listify(getattr(self, f.name)) for f in fields(self)}


@dataclass
class PlacementCreated(PlacementEventBase):
    placement_id: str
    surface_id: str
    position: np.ndarray
    rotation: np.ndarray
    template: str
    width: float
    depth: float
    rows: List[str]
    type: str = field(default="placement_created", init=False)


@dataclass
class PlacementRemoved(PlacementEventBase):
    placement_id: str
    surface_id: str
    reason: str
    type: str = field(default="placement_removed", init=False)


@dataclass
class PlacementUpdated(PlacementEventBase):
    placement_id: str
    surface_id: str
    position: np.ndarray
    rotation: np.ndarray
    type: str = field(default="placement_updated", init=False)


@dataclass
class PlacementActiveChanged(PlacementEventBase):
    placement_id: str
    is_active: bool
    type: str = field(default="placement_active_changed", init=False)


@dataclass
class PlacementVisibilityChanged(PlacementEventBase):
    placement_id: str
    is_visible: bool
    type: str = field(default="placement_visibility_changed", init=False)


@dataclass
class KeyboardInput(PlacementEventBase):
    placement_id: str
    key: str
    type: str = field(default="keyboard_input", init=False)


@dataclass
class CompanionScreenRequested(PlacementEventBase):
    placement_id: str
    position: np.ndarray
    template: str = "browser"
    title: str = "Keyboard Screen"
    type: str = field(default="companion_screen_requested", init=False)


PlacementEvent = Union[
    PlacementCreated, PlacementRemoved, PlacementUpdated, PlacementActiveChanged,
    PlacementVisibilityChanged, KeyboardInput, CompanionScreenRequested,
]
