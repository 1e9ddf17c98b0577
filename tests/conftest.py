"""
Shared test fixtures for the surface detection and placement tests.
"""
import numpy as np
import pytest

from surface_placement.core.detection_engine import SurfaceDetectionEngine
from surface_placement.models.events import Hit, HitTestResult
from surface_placement.models.registry import Registry
from surface_placement.models.spatial import ObserverPose, Placement, Surface, SurfaceSource
from surface_placement.utils.config import DetectionSettings


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


# Five samples around (0, 0.75, -1.0) with +-2 cm jitter
TABLE_SAMPLES = [
    (0.02, 0.75, -1.00),
    (-0.02, 0.75, -1.00),
    (0.00, 0.75, -0.98),
    (0.00, 0.75, -1.02),
    (0.01, 0.75, -1.01),
]

MORE_TABLE_SAMPLES = [
    (0.015, 0.75, -0.995),
    (-0.015, 0.75, -1.005),
    (0.005, 0.75, -0.985),
    (-0.005, 0.75, -1.015),
]


def hits_at(points, normal=(0.0, 1.0, 0.0)) -> HitTestResult:
    return HitTestResult(hits=[Hit(point=p, normal=normal) for p in points])


def make_surface(surface_id: str, position, confidence: float = 0.9, area: float = 0.3,
                 source: SurfaceSource = SurfaceSource.HIT_TEST, seen_at: float = 1000.0) -> Surface:
    return Surface(
        id=surface_id,
        position=np.asarray(position, dtype=float),
        normal=np.array([0.0, 1.0, 0.0]),
        width=0.6,
        depth=area / 0.6,
        area=area,
        confidence=confidence,
        source=source,
        last_seen_at=seen_at,
        created_at=seen_at,
    )


def make_placement(registry: Registry, surface: Surface, now: float = 1000.0) -> Placement:
    placement = Placement(
        id=f"keyboard-{surface.id}",
        surface_id=surface.id,
        position=surface.position + np.array([0.0, 0.02, 0.0]),
        rotation=np.array([0.0, 0.0, 0.0, 1.0]),
        created_at=now,
        last_interaction_at=now,
        sequence=registry.next_sequence(),
    )
    registry.add_placement(placement)
    return placement


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """Defaults, except a small minimum area so hand-sized sample patches promote."""
    return DetectionSettings(min_surface_area=0.001)


@pytest.fixture
def registry(settings):
    return Registry(settings.max_placements)


@pytest.fixture
def engine(settings, clock):
    engine = SurfaceDetectionEngine(settings=settings, clock=clock)
    engine.start_session()
    return engine


@pytest.fixture
def observer():
    """Standing at the origin, eyes at 1.5 m, looking down -Z."""
    return ObserverPose(position=[0.0, 1.5, 0.0], forward=[0.0, 0.0, -1.0])


@pytest.fixture
def recorded_events(engine):
    events = []
    engine.subscribe(events.append)
    return events
