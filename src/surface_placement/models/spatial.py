"""
Surface Placement - Spatial Data Models
Samples, clusters, surfaces and placements
"""

import numpy as np
from enum import Enum
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

UP = np.array([0.0, 1.0, 0.0])


def as_vec3(value) -> np.ndarray:
    """Coerce a 3-sequence into a float vector, raising on bad shape or non-finite values"""
    vec = np.asarray(value, dtype=float).reshape(-1)
    if vec.shape != (3,):
        raise ValueError("Expected a 3D vector")
    if not np.isfinite(vec).all():
        raise ValueError("Vector contains non-finite values")
    return vec


def normalize(vec: np.ndarray) -> Optional[np.ndarray]:
    """Return the unit vector, or None for a zero-length input"""
    norm = np.linalg.norm(vec)
    if norm < 1e-9:
        return None
    return vec / norm


class SurfaceSource(Enum):
    """Origin of the samples a surface was built from"""
    HIT_TEST = "hit_test"
    MESH = "mesh"


class SessionMode(Enum):
    """XR session type; AR provides native hit-testing, VR relies on raycasts"""
    AR = "ar"
    VR = "vr"


@dataclass
class Sample:
    """One normalized environment observation"""
    position: np.ndarray
    normal: np.ndarray
    captured_at: float

    def __post_init__(self):
        self.position = as_vec3(self.position)
        normal = normalize(as_vec3(self.normal))
        if normal is None:
            raise ValueError("Sample normal must be non-zero")
        self.normal = normal


@dataclass
class Cluster:
    """
    Transient grouping of nearby samples within one clustering pass.

    ``centroid`` is a running pairwise average, ``(centroid + point) / 2``,
    so it leans toward the most recently added points. Assignment uses it as
    is. ``mean_position`` is the unbiased mean used for surface poses.
    """
    centroid: np.ndarray
    bbox_min: np.ndarray
    bbox_max: np.ndarray
    member_count: int = 1
    position_sum: np.ndarray = None
    normal_sum: np.ndarray = None

    @classmethod
    def seed(cls, position: np.ndarray, normal: np.ndarray) -> "Cluster":
        return cls(
            centroid=position.copy(),
            bbox_min=position.copy(),
            bbox_max=position.copy(),
            member_count=1,
            position_sum=position.copy(),
            normal_sum=normal.copy(),
        )

    def add(self, position: np.ndarray, normal: np.ndarray):
        self.centroid = (self.centroid + position) / 2.0
        self.bbox_min = np.minimum(self.bbox_min, position)
        self.bbox_max = np.maximum(self.bbox_max, position)
        self.position_sum = self.position_sum + position
        self.normal_sum = self.normal_sum + normal
        self.member_count += 1

    @property
    def width(self) -> float:
        return float(self.bbox_max[0] - self.bbox_min[0])

    @property
    def depth(self) -> float:
        return float(self.bbox_max[2] - self.bbox_min[2])

    @property
    def area(self) -> float:
        return self.width * self.depth

    @property
    def mean_position(self) -> np.ndarray:
        return self.position_sum / self.member_count

    @property
    def mean_normal(self) -> np.ndarray:
        normal = normalize(self.normal_sum)
        return normal if normal is not None else UP.copy()


@dataclass
class Surface:
    """Persistent, confidence-scored record of a detected planar region"""
    id: str
    position: np.ndarray
    normal: np.ndarray
    width: float
    depth: float
    area: float
    confidence: float
    source: SurfaceSource
    last_seen_at: float
    created_at: float
    has_placement: bool = False
    placement_id: Optional[str] = None
    last_interaction_at: Optional[float] = None
    detection_count: int = 1

    def __post_init__(self):
        if not (0.0 <= self.confidence <= 1.0):
            raise ValueError("Confidence must be between 0.0 and 1.0")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'position': self.position.tolist(),
            'normal': self.normal.tolist(),
            'width': self.width,
            'depth': self.depth,
            'area': self.area,
            'confidence': self.confidence,
            'source': self.source.value,
            'last_seen_at': self.last_seen_at,
            'created_at': self.created_at,
            'has_placement': self.has_placement,
            'placement_id': self.placement_id,
            'last_interaction_at': self.last_interaction_at,
            'detection_count': self.detection_count,
        }


@dataclass
class Placement:
    """An object (virtual keyboard) placed on a surface; rendering lives elsewhere"""
    id: str
    surface_id: str
    position: np.ndarray
    rotation: np.ndarray  # [x, y, z, w] quaternion
    created_at: float
    last_interaction_at: float
    sequence: int
    template: str = "standard"
    width: float = 0.0
    depth: float = 0.0
    is_active: bool = False
    is_visible: bool = False
    appear_progress: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'surface_id': self.surface_id,
            'position': self.position.tolist(),
            'rotation': self.rotation.tolist(),
            'created_at': self.created_at,
            'last_interaction_at': self.last_interaction_at,
            'template': self.template,
            'width': self.width,
            'depth': self.depth,
            'is_active': self.is_active,
            'is_visible': self.is_visible,
            'appear_progress': self.appear_progress,
        }


@dataclass
class ObserverPose:
    """Tracked headset position and viewing direction"""
    position: np.ndarray
    forward: np.ndarray = field(default_factory=lambda: np.array([0.0, 0.0, -1.0]))

    def __post_init__(self):
        self.position = as_vec3(self.position)
        forward = normalize(as_vec3(self.forward))
        if forward is None:
            raise ValueError("Observer forward direction must be non-zero")
        self.forward = forward

    def alignment_to(self, point: np.ndarray) -> float:
        """Cosine between the view direction and the direction to ``point``"""
        direction = normalize(point - self.position)
        if direction is None:
            return 1.0
        return float(np.dot(self.forward, direction))

    def distance_to(self, point: np.ndarray) -> float:
        return float(np.linalg.norm(point - self.position))


@dataclass
class KeyboardTemplate:
    """Footprint of a virtual keyboard layout"""
    name: str
    width: float
    depth: float
    rows: List[str] = field(default_factory=list)


KEYBOARD_TEMPLATES: Dict[str, KeyboardTemplate] = {
    'standard': KeyboardTemplate(
        name='standard', width=0.6, depth=0.2,
        rows=['1234567890', 'QWERTYUIOP/', "ASDFGHJKL;'", 'ZXCVBNM,.'],
    ),
    'compact': KeyboardTemplate(
        name='compact', width=0.4, depth=0.15,
        rows=['QWERTYUI', 'ASDFGHJK', 'ZXCVBNM'],
    ),
}
