"""
Surface Placement - Data Models
"""

from .spatial import (
    Sample, Cluster, Surface, Placement, ObserverPose, SurfaceSource,
    SessionMode, KeyboardTemplate, KEYBOARD_TEMPLATES
)
from .events import (
    Hit, HitTestResult, MeshPose, SceneMeshUpdate, ToggleDetection, ObserverPoseUpdate,
    SensorEvent, PlacementCreated, PlacementRemoved, PlacementUpdated,
    PlacementActiveChanged, PlacementVisibilityChanged, KeyboardInput,
    CompanionScreenRequested, PlacementEvent
)
from .registry import Registry, CapacityExceededError

__all__ = [
    'Sample',
    'Cluster',
    'Surface',
    'Placement',
    'ObserverPose',
    'SurfaceSource',
    'SessionMode',
    'KeyboardTemplate',
    'KEYBOARD_TEMPLATES',
    'Hit',
    'HitTestResult',
    'MeshPose',
    'SceneMeshUpdate',
    'ToggleDetection',
    'ObserverPoseUpdate',
    'SensorEvent',
    'PlacementCreated',
    'PlacementRemoved',
    'PlacementUpdated',
    'PlacementActiveChanged',
    'PlacementVisibilityChanged',
    'KeyboardInput',
    'CompanionScreenRequested',
    'PlacementEvent',
    'Registry',
    'CapacityExceededError',
]
