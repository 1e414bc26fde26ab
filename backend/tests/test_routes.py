"""
HTTP API tests.

The app runs its full lifespan (restart sweep, orchestrator start) inside
the TestClient context, with the scripted transcoder standing in for FFmpeg.
"""

import inspect

import pytest
from fastapi.testclient import TestClient

from videomix.main import create_app
from videomix.routes import control, health

from conftest import make_clip, wait_for


@pytest.fixture
def client(config, catalog, transcoder):
    app = create_app(config, catalog=catalog, transcoder=transcoder)
    with TestClient(app) as test_client:
        app.state.mix_service.ledger.purchase("user-1", 20)
        yield test_client


def wait_for_status(client, job_id, status, timeout=10.0):
    def reached():
        return client.get(f"/mix/jobs/{job_id}").json()["status"] == status

    assert wait_for(reached, timeout), f"job {job_id} never reached {status}"
    return client.get(f"/mix/jobs/{job_id}").json()


class TestEstimate:

    def test_estimate_charges_nothing(self, client):
        response = client.post("/mix/estimate", json={"outputCount": 10, "settings": {}})

        assert response.status_code == 200
        body = response.json()
        assert body["creditsRequired"] == 12
        assert body["breakdown"]["enabled_features"] == ["Order Mixing"]
        assert client.app.state.mix_service.ledger.get_balance("user-1") == 20

    def test_invalid_settings(self, client):
        response = client.post("/mix/estimate", json={"outputCount": 1, "settings": {"frameRate": 0}})
        assert response.status_code == 422


class TestJobEndpoints:

    def test_full_job_flow(self, client):
        """
        GIVEN: A funded user and the 3-clip project
        WHEN: A job is started, polled, listed and downloaded
        THEN: 201, COMPLETED with 3 outputs, files served as video/mp4
        """
        response = client.post("/mix/projects/flat/jobs", json={"userId": "user-1"})
        assert response.status_code == 201
        started = response.json()
        assert started["creditsDeducted"] == 3
        assert started["plannedOutputs"] == 3

        job = wait_for_status(client, started["jobId"], "COMPLETED")
        assert job["producedOutputs"] == 3
        assert job["progress"] == 100

        outputs = client.get(f"/mix/jobs/{started['jobId']}/outputs").json()["outputs"]
        assert sorted(output["planIndex"] for output in outputs) == [0, 1, 2]

        download = client.get(f"/mix/outputs/{outputs[0]['id']}/download")
        assert download.status_code == 200
        assert download.headers["content-type"] == "video/mp4"
        assert len(download.content) == 1024

    def test_insufficient_credits(self, client):
        response = client.post("/mix/projects/flat/jobs", json={"userId": "nobody"})

        assert response.status_code == 402
        assert "Insufficient credits" in response.json()["detail"]

    def test_unknown_project(self, client):
        response = client.post("/mix/projects/missing/jobs", json={"userId": "user-1"})
        assert response.status_code == 404

    def test_rejected_settings(self, client, catalog):
        catalog.set_settings("flat", {"durationType": "fixed", "fixedDuration": -5})

        response = client.post("/mix/projects/flat/jobs", json={"userId": "user-1"})

        assert response.status_code == 422
        assert client.app.state.mix_service.ledger.get_balance("user-1") == 20

    def test_unbuildable_transitions(self, client, catalog):
        """
        GIVEN: Two 0.4s clips joined by a 0.5s fade
        WHEN: A job is started
        THEN: 422 naming the transition; no job, nothing charged
        """
        catalog.add_project(
            "short",
            clips=[make_clip("s1", 0.4), make_clip("s2", 0.4)],
            settings={"outputCount": 2, "transitionType": "fade"},
        )

        response = client.post("/mix/projects/short/jobs", json={"userId": "user-1"})

        assert response.status_code == 422
        assert "unsupported transition" in response.json()["detail"]
        assert client.app.state.mix_service.registry.list_jobs() == []
        assert client.app.state.mix_service.ledger.get_balance("user-1") == 20

    def test_unknown_job(self, client):
        assert client.get("/mix/jobs/missing").status_code == 404
        assert client.post("/mix/jobs/missing/cancel").status_code == 404
        assert client.get("/mix/jobs/missing/outputs").status_code == 404
        assert client.get("/mix/outputs/missing/download").status_code == 404

    def test_cancel_finished_job_conflicts(self, client):
        job_id = client.post("/mix/projects/flat/jobs", json={"userId": "user-1"}).json()["jobId"]
        wait_for_status(client, job_id, "COMPLETED")

        response = client.post(f"/mix/jobs/{job_id}/cancel")

        assert response.status_code == 409


class TestHealth:

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "ok"
        assert body["transcoder"] == {"name": "Scripted", "available": True}
        assert body["orchestrator"]["backend"] == "memory"


class TestHandlerKinds:

    @pytest.mark.parametrize("handler", [
        control.start_job_endpoint,
        control.get_job_status_endpoint,
        control.cancel_job_endpoint,
        control.list_outputs_endpoint,
        control.download_output_endpoint,
        health.health,
    ])
    def test_database_handlers_are_sync(self, handler):
        """
        GIVEN: A handler that reads SQLite or the filesystem
        WHEN: FastAPI registers it
        THEN: It is a plain function, so it runs on the threadpool instead of the event loop
        """
        assert not inspect.iscoroutinefunction(handler)
