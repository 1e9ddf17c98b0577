"""
Surface Placement Service Configuration
Environment-based settings for detection, placement and visibility
"""

from typing import List, Optional
from datetime import datetime
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class DetectionSettings(BaseSettings):
    """Surface detection and placement configuration settings"""

    # Environment
    environment: str = Field(default="development", description="Environment (development/staging/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Optional[str] = Field(default=None, description="Directory for rotating log files")

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=9010, description="Server port")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # Scheduling
    detection_interval_ms: int = Field(default=300, description="Detection tick interval in milliseconds")
    frame_interval_ms: int = Field(default=16, description="Visibility pass interval in milliseconds")

    # Sample ingestion
    horizontal_normal_threshold: float = Field(default=0.8, description="Minimum |normal.y| for horizontal surfaces")
    sample_retention_ms: int = Field(default=5000, description="How long raw samples stay in the window")
    max_retained_samples: int = Field(default=500, description="Upper bound on retained samples")
    raycast_grid_size: int = Field(default=3, description="Half-size of the raycast fallback grid")
    raycast_grid_spacing: float = Field(default=0.3, description="Raycast grid spacing in meters")
    min_height_above_floor: float = Field(default=0.3, description="Raycast hits below this height are floor")
    floor_height: float = Field(default=0.0, description="World height of the floor plane")

    # Clustering
    merge_threshold: float = Field(default=0.1, description="Cluster merge distance in meters")
    planar_tolerance: float = Field(default=0.02, description="Mesh coplanarity tolerance in meters")
    max_mesh_vertices: int = Field(default=6000, description="Vertex cap for mesh region growing")
    mesh_faces_per_tick: int = Field(default=400, description="Faces processed per tick for mesh region growing")

    # Surface registry
    min_surface_area: float = Field(default=0.15, description="Minimum surface area in square meters")
    min_hit_test_members: int = Field(default=5, description="Minimum samples to promote a hit-test cluster")
    min_mesh_members: int = Field(default=3, description="Minimum vertices to promote a mesh region")
    mesh_initial_confidence: float = Field(default=0.9, description="Starting confidence for mesh surfaces")
    confidence_step: float = Field(default=0.05, description="Confidence gained per re-detection")
    id_quantization: float = Field(default=0.01, description="Grid size used to derive surface ids")
    hit_test_ttl_ms: int = Field(default=10000, description="TTL for hit-test surfaces")
    mesh_ttl_ms: int = Field(default=30000, description="TTL for mesh surfaces")

    # Placement
    max_placements: int = Field(default=3, description="Maximum concurrent placements")
    placement_confidence_threshold: float = Field(default=0.6, description="Confidence needed to place")
    placement_forward_threshold: float = Field(default=0.3, description="Minimum forward alignment to place")
    placement_clearance_height: float = Field(default=0.02, description="Offset along normal in meters")
    eviction_grace_ms: int = Field(default=60000, description="Idle time before a placement can be evicted")
    reposition_epsilon: float = Field(default=0.01, description="Surface drift that re-poses a placement")
    placement_appear_ms: int = Field(default=500, description="Duration of the appear animation")
    keyboard_template: str = Field(default="standard", description="Keyboard template for new placements")
    companion_screen_offset: float = Field(default=0.4, description="Height of the companion screen above a placement")

    # Visibility
    visibility_alignment_threshold: float = Field(default=0.3, description="Minimum alignment to be visible")
    visibility_max_distance: float = Field(default=2.0, description="Maximum distance to be visible")
    active_alignment_threshold: float = Field(default=0.7, description="Minimum alignment to be active")
    visibility_hysteresis: float = Field(default=0.0, description="Threshold widening for already visible placements")

    # Mesh requests
    mesh_request_interval_ms: int = Field(default=3000, description="Minimum time between mesh requests")
    max_mesh_requests_per_session: int = Field(default=20, description="Mesh request cap per session")

    class Config:
        env_file = ".env"
        env_prefix = "SURFACE_"

    @field_validator(
        "detection_interval_ms", "frame_interval_ms", "sample_retention_ms",
        "hit_test_ttl_ms", "mesh_ttl_ms", "eviction_grace_ms",
        "mesh_request_interval_ms", "placement_appear_ms",
    )
    @classmethod
    def validate_positive_interval(cls, v):
        if v <= 0:
            raise ValueError("Intervals and TTLs must be positive")
        return v

    @field_validator(
        "horizontal_normal_threshold", "placement_confidence_threshold", "visibility_alignment_threshold",
        "mesh_initial_confidence", "active_alignment_threshold",
    )
    @classmethod
    def validate_unit_interval(cls, v):
        if not (0.0 < v <= 1.0):
            raise ValueError("Threshold must be in (0, 1]")
        return v

    @field_validator(
        "merge_threshold", "planar_tolerance", "raycast_grid_spacing",
        "id_quantization", "visibility_max_distance", "confidence_step",
    )
    @classmethod
    def validate_positive_length(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("min_surface_area", "placement_clearance_height", "visibility_hysteresis",
                     "min_height_above_floor", "reposition_epsilon")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Value must not be negative")
        return v

    @field_validator("max_placements", "max_retained_samples", "min_hit_test_members",
                     "min_mesh_members", "max_mesh_vertices", "mesh_faces_per_tick",
                     "max_mesh_requests_per_session")
    @classmethod
    def validate_positive_count(cls, v):
        if v < 1:
            raise ValueError("Count must be at least 1")
        return v

    @field_validator("keyboard_template")
    @classmethod
    def validate_keyboard_template(cls, v):
        from ..models.spatial import KEYBOARD_TEMPLATES
        if v not in KEYBOARD_TEMPLATES:
            raise ValueError(f"Unknown keyboard template: {v}")
        return v

    @model_validator(mode="after")
    def validate_thresholds(self):
        if self.active_alignment_threshold < self.visibility_alignment_threshold:
            raise ValueError("Active alignment threshold must not be below the visibility threshold")
        return self

    # Seconds-based views used by the engine
    @property
    def detection_interval(self) -> float:
        return self.detection_interval_ms / 1000.0

    @property
    def frame_interval(self) -> float:
        return self.frame_interval_ms / 1000.0

    @property
    def sample_retention(self) -> float:
        return self.sample_retention_ms / 1000.0

    @property
    def hit_test_ttl(self) -> float:
        return self.hit_test_ttl_ms / 1000.0

    @property
    def mesh_ttl(self) -> float:
        return self.mesh_ttl_ms / 1000.0

    @property
    def eviction_grace(self) -> float:
        return self.eviction_grace_ms / 1000.0

    @property
    def mesh_request_interval(self) -> float:
        return self.mesh_request_interval_ms / 1000.0

    @property
    def placement_appear(self) -> float:
        return self.placement_appear_ms / 1000.0

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment.lower() == "development"

    def get_timestamp(self) -> str:
        """Get current timestamp in ISO format"""
        return datetime.utcnow().isoformat()


# Global settings instance
_settings = None

def get_settings() -> DetectionSettings:
    """Get application settings (singleton)"""
    global _settings
    if _settings is None:
        _settings = DetectionSettings()
    return _settings


__all__ = ["DetectionSettings", "get_settings"]
