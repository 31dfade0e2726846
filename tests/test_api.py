"""API tests using the Flask test client."""

from __future__ import annotations

import time

import pytest

from safestep.backend.app import create_app
from safestep.backend.config import Config
from safestep.backend.context import AppContext, create_record_store
from safestep.backend.dispatcher import EventDispatcher
from safestep.data_manager.store import CloudRecordStore, FileRecordStore
from safestep.sensors.base import RawReading, SignalKind, SlotId
from safestep.sensors.mock_link import MockSensorLink


@pytest.fixture
def context(tmp_path, channel):
    class TestConfig(Config):
        DATA_DIR = str(tmp_path / "data")
        SETTINGS_FILE = str(tmp_path / "settings.json")
        RECORD_STORE = "file"
        BATCH_SIZE = 3
        UPLOAD_RETRY_DELAY = 0.0
        MOCK_STREAM_RATE = 0

    ctx = AppContext(
        TestConfig,
        link=MockSensorLink(auto_discover=False, auto_connect=False),
        dispatcher=EventDispatcher(inline=True),
        alert_channel=channel,
    )
    ctx.start(scheduler=False)
    yield ctx
    ctx.shutdown()


@pytest.fixture
def app(context):
    app = create_app(context, context.config)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def _connect(client, context, slot: str = "primary") -> None:
    response = client.post(f"/api/sensors/{slot}/scan")
    assert response.status_code == 200
    context.link.discover(SlotId(slot))
    context.link.complete_connect(SlotId(slot))


def _emit(context, n: int) -> None:
    for i in range(n):
        context.link.emit(SlotId.PRIMARY, SignalKind.GYROSCOPE, RawReading(float(i), 0.0, 0.0, float(i)))


class TestHealth:
    def test_health_reports_components(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "online"
        assert set(data["sensors"]) == {"primary", "secondary"}
        assert data["session"]["phase"] == "idle"
        assert data["uploads"]["running"] is True

    def test_socketio_client_receives_status_on_connect(self, app) -> None:
        sio_client = app.extensions["socketio"].test_client(app)
        received = sio_client.get_received()
        assert any(message["name"] == "status" for message in received)
        sio_client.disconnect()

    def test_poll_status_publishes_to_listeners(self, context) -> None:
        published = []
        context.add_status_listener(published.append)
        context.poll_status()
        assert published[0]["session"]["phase"] == "idle"

    def test_poll_status_survives_a_failing_status_build(self, context, monkeypatch) -> None:
        published = []
        context.add_status_listener(published.append)

        def broken():
            raise RuntimeError("status unavailable")

        monkeypatch.setattr(context, "status", broken)
        context.poll_status()
        assert published == []


class TestSensorRoutes:
    def test_scan_connect_and_list(self, client, context) -> None:
        response = client.post("/api/sensors/primary/scan")
        assert response.get_json()["data"]["state"] == "scanning"

        context.link.discover(SlotId.PRIMARY)
        context.link.complete_connect(SlotId.PRIMARY)

        data = client.get("/api/sensors").get_json()["data"]
        assert data["primary"]["state"] == "connected"
        assert data["primary"]["battery"]["percentage"] == 85
        assert data["secondary"]["state"] == "idle"

    def test_scan_refused_when_not_idle(self, client) -> None:
        client.post("/api/sensors/primary/scan")
        response = client.post("/api/sensors/primary/scan")
        assert response.status_code == 409
        assert response.get_json()["status"] == "error"

    def test_unknown_slot_is_bad_request(self, client) -> None:
        response = client.post("/api/sensors/ankle/scan")
        assert response.status_code == 400

    def test_cancel_scan(self, client) -> None:
        client.post("/api/sensors/secondary/scan")
        response = client.post("/api/sensors/secondary/cancel")
        assert response.get_json()["data"]["state"] == "idle"

    def test_ping_and_battery_require_connection(self, client, context) -> None:
        assert client.post("/api/sensors/primary/ping").status_code == 409
        assert client.post("/api/sensors/primary/battery").status_code == 409

        _connect(client, context)
        assert client.post("/api/sensors/primary/ping").status_code == 200
        battery = client.post("/api/sensors/primary/battery").get_json()["data"]
        assert battery == {"percentage": 85, "fill": 100}

    def test_disconnect(self, client, context) -> None:
        _connect(client, context)
        response = client.post("/api/sensors/primary/disconnect")
        assert response.get_json()["data"]["state"] == "idle"

    def test_drop_alert_is_delivered(self, client, context, channel) -> None:
        client.post("/api/settings", json={"disconnect_alerts_enabled": True})
        _connect(client, context)
        context.link.drop(SlotId.PRIMARY)
        assert channel.delivered[0][0] == "Sensor Disconnected"


class TestSessionRoutes:
    def test_start_without_sensor_conflicts(self, client) -> None:
        response = client.post("/api/session/start")
        assert response.status_code == 409
        assert response.get_json()["message"] == "No sensor connected"

    def test_double_start_conflicts(self, client, context) -> None:
        _connect(client, context)
        assert client.post("/api/session/start").status_code == 200
        assert client.post("/api/session/start").status_code == 409

    def test_stop_without_session_conflicts(self, client) -> None:
        assert client.post("/api/session/stop").status_code == 409

    def test_full_session_is_persisted(self, client, context) -> None:
        _connect(client, context)
        client.post("/api/session/start")
        _emit(context, 4)

        response = client.post("/api/session/finalize", json={
            "hazards": ["ice", "stairs"],
            "intensities": [3, 1],
            "image_id": "img-1",
            "building_id": "b-12",
            "building_floor": "2",
        })

        assert response.status_code == 200
        record = response.get_json()["data"]
        assert len(record["batch_ids"]) == 2
        assert record["building_floor"] == "2"
        assert context.uploads.drain(timeout=5)

        scan = client.get("/api/records/scan").get_json()["data"]
        assert scan["total_records"] == 1
        assert scan["total_batches"] == 2
        assert scan["total_samples"] == 4
        assert scan["orphaned_batches"] == []

    def test_cancelled_session_leaves_orphans(self, client, context) -> None:
        _connect(client, context)
        client.post("/api/session/start")
        _emit(context, 4)

        response = client.post("/api/session/cancel")
        batch_ids = response.get_json()["batch_ids"]
        assert len(batch_ids) == 2
        assert context.uploads.drain(timeout=5)

        scan = client.get("/api/records/scan").get_json()["data"]
        assert sorted(scan["orphaned_batches"]) == sorted(batch_ids)
        assert client.get("/api/session").get_json()["data"]["phase"] == "idle"

    def test_finalize_validation(self, client, context) -> None:
        response = client.post("/api/session/finalize", json={"hazards": ["ice"], "intensities": [1, 2]})
        assert response.status_code == 400
        response = client.post("/api/session/finalize", json={"hazards": "ice"})
        assert response.status_code == 400
        response = client.post("/api/session/finalize", json={"hazards": ["ice"], "intensities": [1]})
        assert response.status_code == 409

    def test_single_point_report_without_session(self, client, context) -> None:
        response = client.post("/api/session/finalize", json={
            "hazards": ["pothole"],
            "intensities": [2],
            "single_point_report": True,
        })
        assert response.status_code == 200
        record = response.get_json()["data"]
        assert len(record["batch_ids"]) == 1
        assert record["start_location"] == record["last_location"]


class TestSettingsAndActivity:
    def test_settings_round_trip(self, client, context) -> None:
        assert client.get("/api/settings").get_json()["data"]["walking_detection_sensitivity_seconds"] == 45

        response = client.post("/api/settings", json={"walking_detection_sensitivity_seconds": 20})
        assert response.get_json()["data"]["walking_detection_sensitivity_seconds"] == 20
        assert context.settings.get().walking_detection_sensitivity_seconds == 20

    def test_unknown_setting_is_rejected(self, client) -> None:
        response = client.post("/api/settings", json={"volume": 3})
        assert response.status_code == 400

    def test_activity_before_sensor_connect_is_ignored(self, client) -> None:
        response = client.post("/api/activity", json={"confidence": "high", "walking": True})
        assert response.get_json()["transition"] == "none"

    def test_invalid_confidence_is_bad_request(self, client) -> None:
        response = client.post("/api/activity", json={"confidence": "certain", "walking": True})
        assert response.status_code == 400

    def test_sustained_walking_reports_start(self, client, context) -> None:
        _connect(client, context)
        now = time.time()
        client.post("/api/activity", json={"confidence": "high", "walking": True, "timestamp": now})
        response = client.post("/api/activity", json={
            "confidence": "high", "walking": True, "timestamp": now + 45,
        })
        assert response.get_json()["transition"] == "walking_started"

    def test_walking_transition_is_pushed_to_socket_clients(self, app, client, context) -> None:
        sio_client = app.extensions["socketio"].test_client(app)
        sio_client.get_received()
        _connect(client, context)
        now = time.time()
        client.post("/api/activity", json={"confidence": "high", "walking": True, "timestamp": now + 45})

        events = [m for m in sio_client.get_received() if m["name"] == "walking"]
        assert events[0]["args"][0]["transition"] == "walking_started"
        sio_client.disconnect()


class TestRecordStoreSelection:
    def test_create_record_store(self, tmp_path) -> None:
        class FileConfig(Config):
            RECORD_STORE = "file"
            DATA_DIR = str(tmp_path)

        class CloudConfig(Config):
            RECORD_STORE = "cloud"
            CLOUD_URL = "https://records.example.com"

        class BadConfig(Config):
            RECORD_STORE = "tape"

        assert isinstance(create_record_store(FileConfig), FileRecordStore)
        assert isinstance(create_record_store(CloudConfig), CloudRecordStore)
        with pytest.raises(ValueError):
            create_record_store(BadConfig)

    def test_records_scan_requires_file_store(self, tmp_path) -> None:
        class CloudConfig(Config):
            RECORD_STORE = "cloud"
            CLOUD_URL = "https://records.example.com"
            SETTINGS_FILE = str(tmp_path / "settings.json")

        ctx = AppContext(CloudConfig, link=MockSensorLink(), dispatcher=EventDispatcher(inline=True))
        client = create_app(ctx, CloudConfig).test_client()
        assert client.get("/api/records/scan").status_code == 400
