"""
Surface Detection Engine - Tick orchestration for detection and placement
Owns the registry and routes sensor events through the pipeline
"""

import logging
import time
from collections import deque
from typing import Callable, Deque, List, Optional

from ..models.events import (
    HitTestResult, KeyboardInput, ObserverPoseUpdate, PlacementEvent, PlacementRemoved,
    SceneMeshUpdate, SensorEvent, ToggleDetection
)
from ..models.registry import Registry
from ..models.spatial import ObserverPose, Sample, SessionMode, Surface, SurfaceSource
from ..utils.config import DetectionSettings, get_settings
from ..utils.metrics import DetectionMetrics
from .placement_policy import PlacementPolicy
from .pose_solver import PoseSolver
from .sample_ingestor import SampleIngestor, SceneGeometry
from .surface_clusterer import MeshRegionJob, SurfaceClusterer
from .surface_registry import SurfaceRegistry
from .visibility_gate import VisibilityGate

logger = logging.getLogger(__name__)

PlacementListener = Callable[[PlacementEvent], None]


class MeshRequestLimiter:
    """
    Rate limit for asynchronous scene-mesh requests: one outstanding
    request, a minimum spacing between requests and a per-session cap.
    """

    def __init__(self, settings: DetectionSettings):
        self.settings = settings
        self.outstanding: Optional[int] = None
        self.last_request_at: Optional[float] = None
        self.request_count = 0

    def try_acquire(self, now: float, token: int) -> Optional[int]:
        if self.outstanding is not None:
            return None
        if self.last_request_at is not None and now - self.last_request_at < self.settings.mesh_request_interval:
            return None
        if self.request_count >= self.settings.max_mesh_requests_per_session:
            return None

        self.outstanding = token
        self.last_request_at = now
        self.request_count += 1
        return token

    def release(self, token: Optional[int]):
        if token is not None and token == self.outstanding:
            self.outstanding = None

    def cancel(self):
        self.outstanding = None

    def reset(self):
        self.outstanding = None
        self.last_request_at = None
        self.request_count = 0


class SurfaceDetectionEngine:
    """
    Runs the detection pipeline against one owned ``Registry``.

    Hit-test samples are clustered as they arrive; the periodic ``tick``
    expires stale surfaces, runs the raycast fallback and mesh region
    growing, and creates or evicts placements. ``update_visibility`` is the
    per-frame pass. Every public method holds the registry lock for its
    whole update and publishes events only after releasing it, so readers
    never see a half-applied tick. Failures are logged and nothing is raised
    to the caller; changes applied earlier in the same call are kept and
    their events are still published.
    """

    def __init__(self, settings: Optional[DetectionSettings] = None,
                 registry: Optional[Registry] = None,
                 scene: Optional[SceneGeometry] = None,
                 clock: Callable[[], float] = time.monotonic,
                 metrics: Optional[DetectionMetrics] = None):
        self.settings = settings or get_settings()
        self.metrics = metrics or DetectionMetrics()
        self.registry = registry or Registry(self.settings.max_placements)
        self.scene = scene
        self.clock = clock

        self.ingestor = SampleIngestor(self.settings, self.metrics)
        self.clusterer = SurfaceClusterer(self.settings)
        self.surface_registry = SurfaceRegistry(self.settings, self.metrics)
        self.pose_solver = PoseSolver(self.settings.placement_clearance_height)
        self.placement_policy = PlacementPolicy(self.settings, self.pose_solver, self.metrics)
        self.visibility_gate = VisibilityGate(self.settings, self.metrics)
        self.mesh_limiter = MeshRequestLimiter(self.settings)

        self.enabled = False
        self.mode = SessionMode.AR
        self.generation = 0
        self.observer: Optional[ObserverPose] = None
        self.samples: Deque[Sample] = deque()
        self.mesh_job: Optional[MeshRegionJob] = None
        self._last_tick_at: Optional[float] = None
        self._listeners: List[PlacementListener] = []

    # Listeners

    def subscribe(self, listener: PlacementListener) -> Callable[[], None]:
        """Register an outbound event listener; returns an unsubscribe callable"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _publish(self, events: List[PlacementEvent]) -> List[PlacementEvent]:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception as e:
                    logger.error(f"Placement listener failed on {event.type}: {e}")
        return events

    def _now(self, now: Optional[float]) -> float:
        return self.clock() if now is None else now

    @property
    def hit_test_supported(self) -> bool:
        return self.mode == SessionMode.AR

    # Session control

    def start_session(self, mode: SessionMode = SessionMode.AR) -> None:
        """Enter an XR session and start detecting"""
        with self.registry.lock:
            self.mode = mode
            self.mesh_limiter.reset()
            self._last_tick_at = None
            logger.info(f"Session started in {mode.value} mode")
        self.set_detection_enabled(True)

    def end_session(self) -> List[PlacementEvent]:
        """Leave the session: stop detecting and drop all surfaces and placements"""
        with self.registry.lock:
            self._stop()
            removed = self.registry.clear()
            events = [
                PlacementRemoved(placement_id=p.id, surface_id=p.surface_id, reason="session_ended")
                for p in removed
            ]
            self.metrics.set_gauge('surfaces', 0)
            self.metrics.set_gauge('placements', 0)
            logger.info(f"Session ended, removed {len(removed)} placements")
        return self._publish(events)

    def set_detection_enabled(self, enabled: bool) -> None:
        """Start or stop detection; repeated calls with the same value do nothing"""
        with self.registry.lock:
            if enabled == self.enabled:
                return
            if enabled:
                self.enabled = True
                self.generation += 1
                self._last_tick_at = None
            else:
                self._stop()
            logger.info(f"Surface detection {'enabled' if enabled else 'disabled'}")

    def _stop(self):
        # Pending work belongs to the old generation; late mesh results are discarded
        self.enabled = False
        self.generation += 1
        self.samples.clear()
        self.mesh_job = None
        self.mesh_limiter.cancel()

    # Inbound events

    def handle_event(self, event: SensorEvent) -> List[PlacementEvent]:
        """Dispatch one inbound event"""
        if isinstance(event, HitTestResult):
            self.ingest_hit_test(event)
        elif isinstance(event, SceneMeshUpdate):
            self.ingest_mesh_update(event, token=event.request_token)
        elif isinstance(event, ToggleDetection):
            self.set_detection_enabled(event.enabled)
        elif isinstance(event, ObserverPoseUpdate):
            self.update_observer(event.pose)
        else:
            logger.debug(f"Ignoring unknown event {type(event).__name__}")
        return []

    def update_observer(self, pose: ObserverPose) -> None:
        with self.registry.lock:
            self.observer = pose

    def ingest_hit_test(self, result: HitTestResult, now: Optional[float] = None) -> List[Surface]:
        """
        Add one frame of hit-test results. Every accepted hit is one
        observation: it joins the sample window and triggers a clustering
        pass over that window.
        """
        now = self._now(now)
        touched: List[Surface] = []
        with self.registry.lock:
            if not self.enabled:
                return []
            try:
                for sample in self.ingestor.from_hit_test(result, now):
                    self._retain(sample, now)
                    touched.extend(self._cluster_window(now))
            except Exception as e:
                logger.error(f"Hit-test ingestion failed: {e}")
        return touched

    def _retain(self, sample: Sample, now: float):
        self.samples.append(sample)
        self._prune_samples(now)

    def _prune_samples(self, now: float):
        retention = self.settings.sample_retention
        while self.samples and now - self.samples[0].captured_at >= retention:
            self.samples.popleft()
        while len(self.samples) > self.settings.max_retained_samples:
            self.samples.popleft()

    def _cluster_window(self, now: float) -> List[Surface]:
        clusters = self.clusterer.cluster(self.samples)
        return self.surface_registry.apply_clusters(self.registry, clusters, SurfaceSource.HIT_TEST, now)

    def request_mesh_update(self, now: Optional[float] = None) -> Optional[int]:
        """Reserve a mesh request slot; returns the token to pass back with the result"""
        now = self._now(now)
        with self.registry.lock:
            if not self.enabled:
                return None
            token = self.mesh_limiter.try_acquire(now, self.generation)
            if token is not None:
                self.metrics.increment_counter('mesh_requests')
            return token

    def abandon_mesh_request(self, token: Optional[int]) -> None:
        """Free the request slot after a failed mesh request"""
        with self.registry.lock:
            self.mesh_limiter.release(token)

    def ingest_mesh_update(self, update: SceneMeshUpdate, token: Optional[int] = None,
                           now: Optional[float] = None) -> bool:
        """
        Queue a scene mesh for region growing; stale or disabled results are dropped.

        A result without a token was pushed without reserving a slot first,
        so it is charged to the request limiter on arrival.
        """
        now = self._now(now)
        with self.registry.lock:
            if token is None and self.enabled:
                token = self.mesh_limiter.try_acquire(now, self.generation)
                if token is None:
                    self.metrics.increment_counter('mesh_results_throttled')
                    logger.debug("Dropping unrequested mesh result, request limit reached")
                    return False
                self.metrics.increment_counter('mesh_requests')

            self.mesh_limiter.release(token)
            if not self.enabled or token != self.generation:
                self.metrics.increment_counter('mesh_results_discarded')
                logger.debug("Discarding mesh result from a stopped detection run")
                return False

            try:
                vertices = self.ingestor.from_mesh(update)
                if len(vertices) < 3:
                    return False
                self.mesh_job = self.clusterer.start_mesh_job(vertices, token=self.generation)
                self.metrics.increment_counter('mesh_updates')
                return True
            except Exception as e:
                logger.error(f"Mesh ingestion failed: {e}")
                return False

    # Ticks

    def tick(self, now: Optional[float] = None) -> List[PlacementEvent]:
        """One detection tick: expiry, fallback sampling, mesh work, placement"""
        now = self._now(now)
        events: List[PlacementEvent] = []
        started = time.perf_counter()

        with self.registry.lock:
            if not self.enabled:
                return []
            try:
                elapsed = 0.0 if self._last_tick_at is None else now - self._last_tick_at
                self._last_tick_at = now

                self._prune_samples(now)
                events.extend(self.surface_registry.sweep(self.registry, now))

                if not self.hit_test_supported and self.observer is not None:
                    fallback = self.ingestor.from_raycast(self.observer.position, self.scene, now)
                    if fallback:
                        for sample in fallback:
                            self._retain(sample, now)
                        self._cluster_window(now)

                if self.mesh_job is not None and self.mesh_job.step():
                    self.surface_registry.apply_clusters(
                        self.registry, self.mesh_job.groups, SurfaceSource.MESH, now
                    )
                    self.mesh_job = None

                events.extend(self.placement_policy.reposition(self.registry))
                self.placement_policy.evaluate(self.registry, self.observer, now, events)
                self.placement_policy.advance_animation(self.registry, elapsed)
            except Exception as e:
                logger.error(f"Detection tick failed: {e}")

            self.metrics.record_tick(time.perf_counter() - started)

        return self._publish(events)

    def update_visibility(self, observer: Optional[ObserverPose] = None) -> List[PlacementEvent]:
        """Per-frame visibility pass against the given or last known observer pose"""
        started = time.perf_counter()
        with self.registry.lock:
            if observer is not None:
                self.observer = observer
            try:
                events = self.visibility_gate.evaluate(self.registry, self.observer)
            except Exception as e:
                logger.error(f"Visibility pass failed: {e}")
                events = []
            self.metrics.record_visibility_pass(time.perf_counter() - started)
        return self._publish(events)

    # Placement interaction

    def record_interaction(self, placement_id: str, now: Optional[float] = None) -> bool:
        now = self._now(now)
        with self.registry.lock:
            return self.placement_policy.record_interaction(self.registry, placement_id, now)

    def handle_key_press(self, placement_id: str, key: str, now: Optional[float] = None) -> List[PlacementEvent]:
        """Forward a key press on a placed keyboard; counts as an interaction"""
        if not self.record_interaction(placement_id, now):
            return []
        return self._publish([KeyboardInput(placement_id=placement_id, key=key)])

    def evict_placement(self, placement_id: str) -> List[PlacementEvent]:
        with self.registry.lock:
            events = self.placement_policy.evict(self.registry, placement_id, reason="evicted")
        return self._publish(events)

    # Introspection

    def snapshot(self) -> dict:
        return self.registry.snapshot()

    def get_status(self) -> dict:
        with self.registry.lock:
            return {
                'enabled': self.enabled,
                'mode': self.mode.value,
                'generation': self.generation,
                'retained_samples': len(self.samples),
                'surfaces': len(self.registry.surfaces),
                'placements': self.registry.placement_count,
                'mesh_job_pending': self.mesh_job is not None,
                'mesh_requests': self.mesh_limiter.request_count,
            }

    def get_metrics(self) -> dict:
        return self.metrics.get_metrics()
