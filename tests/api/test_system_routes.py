import pytest
from fastapi.testclient import TestClient

from api.dependencies import set_lifecycle
from api.main import create_app
from api.schemas.system import LifecycleActionResponse
from lifecycle.shutdown_coordinator import ShutdownCoordinator
from models.startup import StartupOverrides


class FakeHub:
    """Stands in for LifecycleSignalHub; records requests instead of exiting."""

    def __init__(self, overrides: StartupOverrides = None):
        self.coordinator = ShutdownCoordinator(overrides=overrides or StartupOverrides())
        self.background_faults = 0
        self.exit_requests = []
        self.restart_requests = 0

    def request_exit(self, exit_code: int = 0):
        self.exit_requests.append(exit_code)

    def request_restart(self):
        self.restart_requests += 1


@pytest.fixture
def client():
    return TestClient(create_app())


@pytest.fixture
def hub():
    hub = FakeHub(StartupOverrides(crypt_key="secret", network_group="eu"))
    set_lifecycle(hub)
    yield hub
    set_lifecycle(None)


def test_status_unavailable_before_init(client):
    set_lifecycle(None)

    response = client.get("/api/system/status")

    assert response.status_code == 503


def test_status_reports_lifecycle(client, hub):
    hub.background_faults = 2

    response = client.get("/api/system/status")

    assert response.status_code == 200
    body = response.json()
    assert body["shutdown_state"] == "NOT_STARTED"
    assert body["exit_code"] is None
    assert body["background_faults"] == 2
    assert body["startup"]["crypt_key_set"] is True
    assert body["startup"]["network_group"] == "eu"
    assert "secret" not in response.text


def test_task_summary(client):
    response = client.get("/api/system/tasks/summary")

    assert response.status_code == 200
    assert set(response.json()) >= {"summary", "total", "active", "failed", "cancelled"}


def test_exit_forwards_code(client, hub):
    response = client.post("/api/system/exit", params={"code": 3})

    assert response.status_code == 202
    assert response.json() == {"action": "exit", "accepted": True, "exit_code": 3}
    assert hub.exit_requests == [3]


def test_exit_defaults_to_zero(client, hub):
    client.post("/api/system/exit")

    assert hub.exit_requests == [0]


@pytest.mark.parametrize("code", [-1, 256])
def test_exit_code_out_of_range(client, hub, code):
    response = client.post("/api/system/exit", params={"code": code})

    assert response.status_code == 422
    assert hub.exit_requests == []


def test_restart_disabled_conflict(client):
    hub = FakeHub(StartupOverrides(restart_allowed=False))
    set_lifecycle(hub)
    try:
        response = client.post("/api/system/restart")
    finally:
        set_lifecycle(None)

    assert response.status_code == 409
    assert hub.restart_requests == 0


def test_restart_accepted(client, hub):
    response = client.post("/api/system/restart")

    assert response.status_code == 202
    assert response.json()["action"] == "restart"
    assert hub.restart_requests == 1


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["service"] == "botfarm-ipc"


def test_action_response_schema_carries_example():
    schema = LifecycleActionResponse.model_json_schema()

    assert schema["example"] == {"action": "exit", "accepted": True, "exit_code": 0}
