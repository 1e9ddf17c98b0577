"""
Detection Service - Asyncio host for the surface detection engine
Drives detection ticks, per-frame visibility and mesh requests
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..models.events import PlacementEvent, SceneMeshUpdate
from .detection_engine import SurfaceDetectionEngine

logger = logging.getLogger(__name__)

MeshProvider = Callable[[], Awaitable[Optional[SceneMeshUpdate]]]


class DetectionService:
    """
    Background loops around one ``SurfaceDetectionEngine``.

    All loops run on the same event loop, so engine calls never overlap.
    Outbound events are fanned out to per-subscriber queues for streaming.
    """

    def __init__(self, engine: SurfaceDetectionEngine, mesh_provider: Optional[MeshProvider] = None,
                 queue_size: int = 1000):
        self.engine = engine
        self.mesh_provider = mesh_provider
        self.queue_size = queue_size

        self.subscribers: List[asyncio.Queue] = []
        self.tasks: List[asyncio.Task] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.stats = {
            'events_published': 0,
            'events_dropped': 0,
            'mesh_requests_failed': 0,
        }
        self.is_initialized = False

    async def initialize(self) -> None:
        """Start background loops"""
        try:
            logger.info("Initializing Detection Service...")

            self._unsubscribe = self.engine.subscribe(self._fan_out)
            self.tasks.append(asyncio.create_task(self._detection_loop()))
            self.tasks.append(asyncio.create_task(self._visibility_loop()))
            if self.mesh_provider is not None:
                self.tasks.append(asyncio.create_task(self._mesh_loop()))

            self.is_initialized = True
            logger.info("✅ Detection Service initialized successfully")

        except Exception as e:
            logger.error(f"❌ Failed to initialize Detection Service: {e}")
            raise

    # Event streaming

    def open_event_stream(self) -> asyncio.Queue:
        queue = asyncio.Queue(maxsize=self.queue_size)
        self.subscribers.append(queue)
        return queue

    def close_event_stream(self, queue: asyncio.Queue):
        if queue in self.subscribers:
            self.subscribers.remove(queue)

    def _fan_out(self, event: PlacementEvent):
        message = event.to_dict()
        message['timestamp'] = datetime.utcnow().isoformat()
        for queue in list(self.subscribers):
            try:
                queue.put_nowait(message)
                self.stats['events_published'] += 1
            except asyncio.QueueFull:
                self.stats['events_dropped'] += 1
                logger.warning(f"Event stream full, dropping {event.type}")

    # Loops

    async def _detection_loop(self):
        """Fixed-rate detection ticks"""
        while True:
            try:
                await asyncio.sleep(self.engine.settings.detection_interval)
                self.engine.tick()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Detection loop error: {e}")

    async def _visibility_loop(self):
        """Per-frame visibility updates"""
        while True:
            try:
                await asyncio.sleep(self.engine.settings.frame_interval)
                self.engine.update_visibility()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Visibility loop error: {e}")

    async def _mesh_loop(self):
        """Rate-limited scene mesh requests"""
        while True:
            try:
                await asyncio.sleep(self.engine.settings.mesh_request_interval)
                await self.request_mesh_once()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Mesh loop error: {e}")

    async def request_mesh_once(self) -> bool:
        """Issue one mesh request if the limiter allows it and apply the result"""
        token = self.engine.request_mesh_update()
        if token is None:
            return False

        try:
            update = await self.mesh_provider()
        except Exception as e:
            self.stats['mesh_requests_failed'] += 1
            logger.warning(f"Mesh request failed: {e}")
            self.engine.abandon_mesh_request(token)
            return False

        if update is None:
            self.engine.abandon_mesh_request(token)
            return False
        return self.engine.ingest_mesh_update(update, token=token)

    # Lifecycle

    async def get_metrics(self) -> Dict[str, Any]:
        return {
            'statistics': self.stats,
            'engine': self.engine.get_metrics(),
            'status': self.engine.get_status(),
            'active_state': {
                'subscribers': len(self.subscribers),
                'running_tasks': sum(1 for t in self.tasks if not t.done()),
                'is_initialized': self.is_initialized
            },
            'timestamp': datetime.utcnow().isoformat()
        }

    async def health_check(self) -> bool:
        return self.is_initialized and all(not t.done() for t in self.tasks)

    async def shutdown(self):
        """Stop loops and detach from the engine"""
        try:
            for task in self.tasks:
                task.cancel()
            for task in self.tasks:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            self.tasks.clear()

            if self._unsubscribe:
                self._unsubscribe()
                self._unsubscribe = None

            self.engine.set_detection_enabled(False)
            self.is_initialized = False
            logger.info("Detection Service shutdown complete")

        except Exception as e:
            logger.error(f"Error during detection service shutdown: {e}")
