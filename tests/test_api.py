"""Tests for the HTTP surface of the placement service."""
import pytest
from fastapi.testclient import TestClient

from surface_placement.main import create_app

from conftest import TABLE_SAMPLES, make_placement, make_surface


@pytest.fixture
def client(settings):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def started(client):
    response = client.post("/api/v1/session/start", json={"mode": "ar"})
    assert response.status_code == 200
    return client


def hit_payload(points, normal=(0.0, 1.0, 0.0)):
    return {"hits": [{"point": list(p), "normal": list(normal)} for p in points]}


class TestServiceEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_lists_endpoints(self, client):
        data = client.get("/").json()
        assert data["service"] == "Surface Placement Service"
        assert "/api/v1/events" == data["endpoints"]["events"]

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "statistics" in response.json()["metrics"]

    def test_unavailable_before_startup(self, settings):
        client = TestClient(create_app(settings))
        assert client.get("/health").status_code == 503
        assert client.get("/api/v1/detection/status").status_code == 503


class TestDetectionEndpoints:

    def test_session_start_enables_detection(self, started):
        status = started.get("/api/v1/detection/status").json()
        assert status["enabled"] is True
        assert status["mode"] == "ar"

    def test_hit_test_creates_surface(self, started):
        response = started.post("/api/v1/sensors/hit-test", json=hit_payload(TABLE_SAMPLES))

        data = response.json()
        assert data["accepted"] is True
        assert len(data["surfaces"]) == 1
        assert data["surfaces"][0]["confidence"] == pytest.approx(0.25)

        listing = started.get("/api/v1/surfaces").json()
        assert listing["count"] == 1

    def test_toggle_off_rejects_samples(self, started):
        assert started.post("/api/v1/detection/toggle", json={"enabled": False}).json() == {"enabled": False}

        data = started.post("/api/v1/sensors/hit-test", json=hit_payload(TABLE_SAMPLES)).json()
        assert data == {"accepted": False, "surfaces": []}

    def test_bad_vector_is_rejected(self, started):
        response = started.post("/api/v1/sensors/hit-test",
                                json={"hits": [{"point": [0.0, 1.0], "normal": [0.0, 1.0, 0.0]}]})
        assert response.status_code == 422

    def test_zero_view_direction_is_rejected(self, started):
        response = started.post("/api/v1/observer/pose",
                                json={"position": [0.0, 1.5, 0.0], "forward": [0.0, 0.0, 0.0]})
        assert response.status_code == 422

    def test_mesh_request_round_trip(self, started):
        grant = started.post("/api/v1/sensors/mesh/request").json()
        assert grant["granted"] is True

        vertices = [
            -0.3, 0.75, -1.2, 0.3, 0.75, -1.2, 0.3, 0.75, -0.8,
            -0.3, 0.75, -1.2, 0.3, 0.75, -0.8, -0.3, 0.75, -0.8,
        ]
        response = started.post("/api/v1/sensors/mesh",
                                json={"vertices": vertices, "request_token": grant["request_token"]})
        assert response.json() == {"accepted": True}

        assert started.post("/api/v1/sensors/mesh/request").json()["granted"] is False


class TestPlacementEndpoints:

    @pytest.fixture
    def placement(self, started):
        engine = started.app.state.detection_service.engine
        # Background loops tick on the client's event loop thread
        with engine.registry.lock:
            surface = make_surface("desk", (0.0, 0.75, -1.0), seen_at=engine.clock())
            engine.registry.add_surface(surface)
            return make_placement(engine.registry, surface, now=engine.clock())

    def test_placements_are_listed(self, started, placement):
        data = started.get("/api/v1/placements").json()
        assert data["count"] == 1
        assert data["placements"][0]["id"] == placement.id

    def test_key_press(self, started, placement):
        response = started.post(f"/api/v1/placements/{placement.id}/keys", json={"key": "Q"})
        assert response.json()["type"] == "keyboard_input"
        assert response.json()["key"] == "Q"

    def test_delete_placement(self, started, placement):
        response = started.delete(f"/api/v1/placements/{placement.id}")
        assert response.json()["type"] == "placement_removed"
        assert started.get("/api/v1/placements").json()["count"] == 0

    def test_end_session_reports_removed(self, started, placement):
        data = started.post("/api/v1/session/end").json()
        assert data == {"removed_placements": [placement.id]}

    @pytest.mark.parametrize("method, path", [
        ("post", "/api/v1/placements/missing/interact"),
        ("delete", "/api/v1/placements/missing"),
    ])
    def test_unknown_placement_is_404(self, started, method, path):
        assert getattr(started, method)(path).status_code == 404

    def test_key_press_on_unknown_placement_is_404(self, started):
        response = started.post("/api/v1/placements/missing/keys", json={"key": "Q"})
        assert response.status_code == 404


class TestEventStream:
    """Placement events reach WebSocket clients, and closed clients are unsubscribed."""

    def test_key_press_is_streamed(self, started):
        engine = started.app.state.detection_service.engine
        with engine.registry.lock:
            surface = make_surface("desk", (0.0, 0.75, -1.0), seen_at=engine.clock())
            engine.registry.add_surface(surface)
            placement = make_placement(engine.registry, surface, now=engine.clock())

        with started.websocket_connect("/api/v1/events") as websocket:
            started.post(f"/api/v1/placements/{placement.id}/keys", json={"key": "Q"})
            message = websocket.receive_json()
            while message["type"] != "keyboard_input":
                message = websocket.receive_json()

        assert message["key"] == "Q"
        assert message["placement_id"] == placement.id

    def test_closed_client_is_unsubscribed(self, started):
        service = started.app.state.detection_service

        with started.websocket_connect("/api/v1/events") as websocket:
            websocket.send_text("ping")
            assert len(service.subscribers) == 1

        assert service.subscribers == []
