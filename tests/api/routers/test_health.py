from fastapi import FastAPI
from fastapi.testclient import TestClient

from coachlive import __version__
from coachlive.api.routers.health import router


def test_health_not_ready_without_coordinator():
    app = FastAPI()
    app.include_router(router)

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["results"]["status"] == "ok"
    assert data["results"]["app_version"] == __version__
    assert data["results"]["ready"] is False


def test_health_ready(coordinator):
    app = FastAPI()
    app.include_router(router)
    app.state.coordinator = coordinator

    results = TestClient(app).get("/health").json()["results"]

    assert results["ready"] is True
    assert results["demo_mode"] is True
    assert results["storage_backend"] == "memory"
    assert results["event_transport"] == "local"
