import pytest
from fastapi.testclient import TestClient

from chunkvault.backend import InMemoryBackend
from chunkvault.config import Settings
from chunkvault.errors import BackendError
from chunkvault.main import create_app


@pytest.fixture
def client():
    app = create_app(Settings(chunk_size=8), backend=InMemoryBackend())
    with TestClient(app) as test_client:
        yield test_client


def test_put_then_get_blob(client):
    payload = b"chunked payload over http" * 3
    response = client.put("/api/blob", content=payload)
    assert response.status_code == 200
    body = response.json()
    assert body["committed"] is True
    assert body["chunk_count"] == 10
    assert body["stale_count"] == 0

    fetched = client.get("/api/blob")
    assert fetched.status_code == 200
    assert fetched.headers["content-type"] == "application/octet-stream"
    assert fetched.content == payload

    meta = client.get("/api/blob/meta").json()
    assert meta["chunk_count"] == 10
    assert meta["chunk_ids"] == body["chunk_ids"]


def test_second_put_reports_cleanup(client):
    client.put("/api/blob", content=b"first version")
    body = client.put("/api/blob", content=b"second version").json()
    assert body["stale_count"] == 2
    assert body["cleanup"]["deleted"] == 2
    assert client.get("/api/metrics").json()["cleanup"]["deleted"] == 2


def test_missing_blob_is_404(client):
    assert client.get("/api/blob").status_code == 404
    assert client.get("/api/blob/meta").status_code == 404
    status = client.get("/api/status").json()
    assert status["present"] is False
    assert status["last_write"] is None


def test_empty_body_rejected(client):
    assert client.put("/api/blob", content=b"").status_code == 400


def test_aborted_write_is_503_and_keeps_previous(client):
    client.put("/api/blob", content=b"stable data")
    assert client.post("/api/config/faults", json={"fail_commit": 1.0}).json()["fail_commit"] == 1.0

    response = client.put("/api/blob", content=b"never visible")
    assert response.status_code == 503
    assert response.json()["detail"]["state"] == "aborted"

    client.post("/api/config/faults", json={})
    assert client.get("/api/blob").content == b"stable data"
    assert client.get("/api/metrics").json()["aborted_writes"] == 1


def test_corrupt_read_is_409(client):
    client.put("/api/blob", content=b"0123456789abcdef")
    client.post("/api/config/faults", json={"loss": 1.0})

    response = client.get("/api/blob")
    assert response.status_code == 409
    assert response.json()["detail"]["missing"] == [0, 1]

    status = client.get("/api/status").json()
    assert status["present"] is True
    assert status["readable"] is False
    assert status["missing_positions"] == [0, 1]
    assert status["last_write"]["committed"] is True


def test_fault_config_is_clamped_and_reported(client):
    client.post("/api/config/faults", json={"reorder": 3.0})
    body = client.get("/api/config/faults").json()
    assert body["config"]["reorder"] == 1.0
    assert "failed_commits" in body["stats"]


class _UnreachableBackend(InMemoryBackend):
    def get(self, key):
        raise BackendError("get", "connection refused")


@pytest.mark.parametrize("path", ["/api/blob", "/api/blob/meta", "/api/status"])
def test_backend_error_on_read_is_503(path):
    app = create_app(Settings(chunk_size=8), backend=_UnreachableBackend())
    with TestClient(app) as unreachable:
        response = unreachable.get(path)
    assert response.status_code == 503
    assert "connection refused" in response.json()["detail"]


def test_only_blob_store_routes_are_exposed(client):
    assert client.post("/api/ping").status_code == 404
    assert "data_dir" not in Settings.model_fields
