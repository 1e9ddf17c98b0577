"""
Core detection and placement components
"""

from .pose_solver import PoseSolver
from .sample_ingestor import SampleIngestor, SceneGeometry
from .surface_clusterer import SurfaceClusterer, MeshRegionJob
from .surface_registry import SurfaceRegistry
from .placement_policy import PlacementPolicy
from .visibility_gate import VisibilityGate
from .detection_engine import SurfaceDetectionEngine, MeshRequestLimiter
from .detection_service import DetectionService

__all__ = [
    'PoseSolver',
    'SampleIngestor',
    'SceneGeometry',
    'SurfaceClusterer',
    'MeshRegionJob',
    'SurfaceRegistry',
    'PlacementPolicy',
    'VisibilityGate',
    'SurfaceDetectionEngine',
    'MeshRequestLimiter',
    'DetectionService',
]
