"""
Surface Placement API Routes
REST endpoints for sensor input and a WebSocket stream of placement events
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field, field_validator

from ..core.detection_engine import SurfaceDetectionEngine
from ..core.detection_service import DetectionService
from ..models.events import Hit, HitTestResult, MeshPose, SceneMeshUpdate
from ..models.spatial import ObserverPose, SessionMode

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Surface Placement"])


def _check_length(v, length: int, name: str):
    if len(v) != length:
        raise ValueError(f'{name} must have exactly {length} components')
    return v


# Pydantic models
class ToggleRequest(BaseModel):
    enabled: bool = Field(..., description="Start (true) or stop (false) detection")


class SessionStartRequest(BaseModel):
    mode: SessionMode = Field(default=SessionMode.AR, description="XR session mode (ar, vr)")


class HitModel(BaseModel):
    point: List[float] = Field(..., description="Hit point [x, y, z]")
    normal: List[float] = Field(..., description="Surface normal [x, y, z]")

    @field_validator('point', 'normal')
    @classmethod
    def validate_vec3(cls, v):
        return _check_length(v, 3, 'Vector')


class HitTestRequest(BaseModel):
    hits: List[HitModel] = Field(default_factory=list, description="Hit-test results for one frame")


class MeshPoseModel(BaseModel):
    position: List[float] = Field(default=[0.0, 0.0, 0.0], description="Mesh origin [x, y, z]")
    rotation: List[float] = Field(default=[0.0, 0.0, 0.0, 1.0], description="Quaternion [x, y, z, w]")

    @field_validator('position')
    @classmethod
    def validate_position(cls, v):
        return _check_length(v, 3, 'Position')

    @field_validator('rotation')
    @classmethod
    def validate_rotation(cls, v):
        return _check_length(v, 4, 'Rotation')


class MeshUpdateRequest(BaseModel):
    pose: MeshPoseModel = Field(default_factory=MeshPoseModel)
    vertices: List[float] = Field(default_factory=list, description="Flat xyz vertex triples")
    request_token: Optional[int] = Field(None, description="Token returned when the mesh was requested")


class ObserverPoseRequest(BaseModel):
    position: List[float] = Field(..., description="Observer position [x, y, z]")
    forward: List[float] = Field(default=[0.0, 0.0, -1.0], description="View direction [x, y, z]")

    @field_validator('position', 'forward')
    @classmethod
    def validate_vec3(cls, v):
        return _check_length(v, 3, 'Vector')


class KeyPressRequest(BaseModel):
    key: str = Field(..., min_length=1, description="Key label")


# Global service references (injected from main.py)
detection_service: Optional[DetectionService] = None


def set_services(service: Optional[DetectionService]):
    global detection_service
    detection_service = service


def get_detection_service() -> DetectionService:
    """Get detection service dependency"""
    if not detection_service:
        raise HTTPException(status_code=503, detail="Detection service not available")
    return detection_service


def get_engine(service: DetectionService = Depends(get_detection_service)) -> SurfaceDetectionEngine:
    return service.engine


# Detection control

@router.post("/detection/toggle")
async def toggle_detection(request: ToggleRequest, engine: SurfaceDetectionEngine = Depends(get_engine)):
    engine.set_detection_enabled(request.enabled)
    return {"enabled": engine.enabled}


@router.post("/session/start")
async def start_session(request: SessionStartRequest, engine: SurfaceDetectionEngine = Depends(get_engine)):
    engine.start_session(request.mode)
    return engine.get_status()


@router.post("/session/end")
async def end_session(engine: SurfaceDetectionEngine = Depends(get_engine)):
    events = engine.end_session()
    return {"removed_placements": [e.placement_id for e in events]}


@router.get("/detection/status")
async def detection_status(engine: SurfaceDetectionEngine = Depends(get_engine)):
    return engine.get_status()


# Sensor input

@router.post("/sensors/hit-test")
async def ingest_hit_test(request: HitTestRequest, engine: SurfaceDetectionEngine = Depends(get_engine)):
    result = HitTestResult(hits=[Hit(point=h.point, normal=h.normal) for h in request.hits])
    surfaces = engine.ingest_hit_test(result)
    return {
        "accepted": engine.enabled,
        "surfaces": [s.to_dict() for s in surfaces],
    }


@router.post("/sensors/mesh")
async def ingest_mesh(request: MeshUpdateRequest, engine: SurfaceDetectionEngine = Depends(get_engine)):
    update = SceneMeshUpdate(
        pose=MeshPose(position=request.pose.position, rotation=request.pose.rotation),
        vertices=request.vertices,
        request_token=request.request_token,
    )
    accepted = engine.ingest_mesh_update(update, token=request.request_token)
    return {"accepted": accepted}


@router.post("/sensors/mesh/request")
async def request_mesh(engine: SurfaceDetectionEngine = Depends(get_engine)):
    token = engine.request_mesh_update()
    return {"granted": token is not None, "request_token": token}


@router.post("/observer/pose")
async def update_observer(request: ObserverPoseRequest, engine: SurfaceDetectionEngine = Depends(get_engine)):
    try:
        pose = ObserverPose(position=request.position, forward=request.forward)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    engine.update_observer(pose)
    return {"position": pose.position.tolist(), "forward": pose.forward.tolist()}


# Registry views

@router.get("/surfaces")
async def list_surfaces(engine: SurfaceDetectionEngine = Depends(get_engine)) -> Dict[str, Any]:
    snapshot = engine.snapshot()
    return {"surfaces": snapshot["surfaces"], "count": len(snapshot["surfaces"])}


@router.get("/placements")
async def list_placements(engine: SurfaceDetectionEngine = Depends(get_engine)) -> Dict[str, Any]:
    snapshot = engine.snapshot()
    return {"placements": snapshot["placements"], "count": len(snapshot["placements"])}


@router.post("/placements/{placement_id}/interact")
async def interact(placement_id: str, engine: SurfaceDetectionEngine = Depends(get_engine)):
    if not engine.record_interaction(placement_id):
        raise HTTPException(status_code=404, detail="Placement not found")
    return {"placement_id": placement_id, "interacted": True}


@router.post("/placements/{placement_id}/keys")
async def press_key(placement_id: str, request: KeyPressRequest,
                    engine: SurfaceDetectionEngine = Depends(get_engine)):
    events = engine.handle_key_press(placement_id, request.key)
    if not events:
        raise HTTPException(status_code=404, detail="Placement not found")
    return events[0].to_dict()


@router.delete("/placements/{placement_id}")
async def delete_placement(placement_id: str, engine: SurfaceDetectionEngine = Depends(get_engine)):
    events = engine.evict_placement(placement_id)
    if not events:
        raise HTTPException(status_code=404, detail="Placement not found")
    return events[0].to_dict()


# Event stream

@router.websocket("/events")
async def placement_events(websocket: WebSocket):
    """Stream outbound placement events to a renderer"""
    service = detection_service
    if service is None:
        await websocket.accept()
        await websocket.close(code=1013)
        return

    # Subscribed before accepting so nothing published after the handshake is missed
    queue = service.open_event_stream()
    reader: Optional[asyncio.Task] = None
    getter: Optional[asyncio.Task] = None
    try:
        await websocket.accept()
        reader = asyncio.create_task(_read_until_disconnect(websocket))
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, reader}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                break
            await websocket.send_json(getter.result())
    except WebSocketDisconnect:
        pass
    finally:
        for task in (getter, reader):
            if task is not None and not task.done():
                task.cancel()
        service.close_event_stream(queue)
        logger.info("Event stream client disconnected")


async def _read_until_disconnect(websocket: WebSocket):
    """Consume client messages so a closed socket is noticed without waiting for an event"""
    while True:
        try:
            await websocket.receive_text()
        except WebSocketDisconnect:
            return
        except Exception as e:
            logger.error(f"Event stream receive failed: {e}")
            return
