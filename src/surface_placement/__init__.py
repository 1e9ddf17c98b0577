"""
Surface Placement - Spatial surface detection and placement lifecycle
Turns noisy AR sensing into stable surfaces and manages objects placed on them
"""

__version__ = "1.0.0"
__author__ = "Spatial Platform Team"

from .core.detection_engine import SurfaceDetectionEngine
from .core.detection_service import DetectionService
from .core.sample_ingestor import SceneGeometry
from .models.registry import Registry
from .models.spatial import ObserverPose, SessionMode, SurfaceSource
from .utils.config import DetectionSettings, get_settings

__all__ = [
    "SurfaceDetectionEngine",
    "DetectionService",
    "SceneGeometry",
    "Registry",
    "ObserverPose",
    "SessionMode",
    "SurfaceSource",
    "DetectionSettings",
    "get_settings",
]
