"""
Integration tests for the API endpoints.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from job_engine.constants import JobStatus


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient, sample_job: dict) -> dict:
        """Create a job for testing."""
        response = await client.post("/v1/jobs", json=sample_job)
        assert response.status_code == 201
        return response.json()

    async def _claim(self, client: AsyncClient, worker_id: str = "api-worker", **body) -> dict | None:
        response = await client.post("/v1/jobs/claim", json={"worker_id": worker_id, **body})
        assert response.status_code == 200
        return response.json()["job"]

    async def test_create_job_success(self, client: AsyncClient):
        """Test successful job creation."""
        response = await client.post(
            "/v1/jobs",
            json={"type": "echo", "params": {"message": "hello"}, "priority": 7},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == JobStatus.PENDING
        assert data["type"] == "echo"
        assert data["params"] == {"message": "hello"}
        assert data["priority"] == 7
        assert data["retries"] == 0
        assert data["max_retries"] == 3
        assert data["claimed_at"] is None

    async def test_create_job_batch(self, client: AsyncClient):
        """Test an array body creates every job in order."""
        response = await client.post(
            "/v1/jobs",
            json=[{"type": "echo"}, {"type": "ping", "max_retries": 1}],
        )

        assert response.status_code == 201
        data = response.json()
        assert [job["type"] for job in data] == ["echo", "ping"]
        assert data[0]["id"] < data[1]["id"]

    @pytest.mark.parametrize(
        "body",
        [
            {"type": ""},
            {"type": "echo", "priority": 1000},
            {"type": "echo", "max_retries": 0},
            {"params": {}},
            [],
        ],
    )
    async def test_create_job_validation(self, client: AsyncClient, body):
        """Test malformed bodies are rejected with 422."""
        response = await client.post("/v1/jobs", json=body)

        assert response.status_code == 422

    async def test_get_job(self, client: AsyncClient, created_job: dict):
        """Test getting a job by ID."""
        response = await client.get(f"/v1/jobs/{created_job['id']}")

        assert response.status_code == 200
        assert response.json()["id"] == created_job["id"]

    async def test_get_job_not_found(self, client: AsyncClient):
        """Test getting a non-existent job."""
        response = await client.get("/v1/jobs/999999")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_list_jobs(self, client: AsyncClient):
        """Test listing with filters and pagination."""
        await client.post("/v1/jobs", json=[{"type": "echo"}, {"type": "ping"}, {"type": "echo"}])

        response = await client.get("/v1/jobs", params={"type": "echo", "limit": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["limit"] == 1
        assert data["offset"] == 0
        assert len(data["jobs"]) == 1

        response = await client.get("/v1/jobs", params={"status": "claimed"})
        assert response.json()["total"] == 0

    async def test_list_jobs_bad_pagination(self, client: AsyncClient):
        """Test out-of-range pagination is rejected."""
        response = await client.get("/v1/jobs", params={"limit": 0})
        assert response.status_code == 422

        response = await client.get("/v1/jobs", params={"limit": 500})
        assert response.status_code == 422

    async def test_claim_empty_queue(self, client: AsyncClient):
        """Test claim returns a null job when nothing is pending."""
        assert await self._claim(client) is None

    async def test_claim_requires_worker_id(self, client: AsyncClient):
        """Test claim rejects a missing worker id."""
        response = await client.post("/v1/jobs/claim", json={})

        assert response.status_code == 422

    async def test_lifecycle_complete(self, client: AsyncClient, created_job: dict):
        """Test claim -> start -> complete over HTTP."""
        claimed = await self._claim(client, type="echo")
        assert claimed["id"] == created_job["id"]
        assert claimed["status"] == JobStatus.CLAIMED
        assert claimed["worker_id"] == "api-worker"

        response = await client.post(
            f"/v1/jobs/{claimed['id']}/start",
            json={"worker_id": "api-worker"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == JobStatus.RUNNING

        response = await client.post(
            f"/v1/jobs/{claimed['id']}/complete",
            json={"result": {"answer": 42}},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == JobStatus.COMPLETED
        assert data["result"] == {"answer": 42}
        assert data["completed_at"] is not None

    async def test_start_without_body(self, client: AsyncClient, created_job: dict):
        """Test start and complete accept an empty body."""
        await self._claim(client)

        response = await client.post(f"/v1/jobs/{created_job['id']}/start")
        assert response.status_code == 200

        response = await client.post(f"/v1/jobs/{created_job['id']}/complete")
        assert response.status_code == 200
        assert response.json()["result"] is None

    async def test_fail_and_retry(self, client: AsyncClient):
        """Test fail re-queues, then fails permanently."""
        response = await client.post("/v1/jobs", json={"type": "echo", "max_retries": 2})
        job_id = response.json()["id"]

        await self._claim(client)
        response = await client.post(f"/v1/jobs/{job_id}/fail", json={"error": "first"})
        assert response.status_code == 200
        data = response.json()
        assert data["retried"] is True
        assert data["status"] == JobStatus.PENDING
        assert data["retries"] == 1

        await self._claim(client)
        response = await client.post(f"/v1/jobs/{job_id}/fail", json={"error": "second"})
        data = response.json()
        assert data["retried"] is False
        assert data["status"] == JobStatus.FAILED
        assert data["retries"] == 2
        assert data["completed_at"] is not None

    async def test_fail_requires_error(self, client: AsyncClient, created_job: dict):
        """Test fail rejects an empty error message."""
        response = await client.post(f"/v1/jobs/{created_job['id']}/fail", json={"error": ""})

        assert response.status_code == 422

    async def test_invalid_state_is_conflict(self, client: AsyncClient, created_job: dict):
        """Test wrong-status operations return 409."""
        response = await client.post(f"/v1/jobs/{created_job['id']}/complete", json={})

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "invalid_state"
        assert "pending" in data["detail"]

    async def test_cancel(self, client: AsyncClient, created_job: dict):
        """Test cancel of a pending job, and refusal once running."""
        response = await client.post(f"/v1/jobs/{created_job['id']}/cancel")
        assert response.status_code == 200
        assert response.json()["status"] == JobStatus.CANCELLED

        response = await client.post("/v1/jobs", json={"type": "echo"})
        job_id = response.json()["id"]
        await self._claim(client)
        await client.post(f"/v1/jobs/{job_id}/start")

        response = await client.post(f"/v1/jobs/{job_id}/cancel")
        assert response.status_code == 409

    async def test_unknown_job_operations_are_not_found(self, client: AsyncClient):
        """Test operations on missing ids return 404."""
        for action in ("start", "complete", "cancel"):
            response = await client.post(f"/v1/jobs/999999/{action}")
            assert response.status_code == 404

        response = await client.post("/v1/jobs/999999/fail", json={"error": "x"})
        assert response.status_code == 404

    async def test_sweep(self, client: AsyncClient, created_job: dict):
        """Test sweep with timeout 0 returns the claim to pending."""
        await self._claim(client)

        response = await client.post("/v1/jobs/sweep", json={"timeout_minutes": 0})

        assert response.status_code == 200
        assert response.json() == {
            "swept": 1,
            "jobs": [{"id": created_job["id"], "type": "echo"}],
        }

        job = (await client.get(f"/v1/jobs/{created_job['id']}")).json()
        assert job["status"] == JobStatus.PENDING
        assert job["worker_id"] is None

        response = await client.post("/v1/jobs/sweep", json={"timeout_minutes": 0})
        assert response.json()["swept"] == 0

    async def test_sweep_default_timeout(self, client: AsyncClient, created_job: dict):
        """Test sweep without a body leaves fresh claims alone."""
        await self._claim(client)

        response = await client.post("/v1/jobs/sweep")

        assert response.status_code == 200
        assert response.json()["swept"] == 0

    async def test_stats(self, client: AsyncClient):
        """Test per-type statistics."""
        await client.post("/v1/jobs", json=[{"type": "echo", "priority": 1}, {"type": "ping"}])
        claimed = await self._claim(client)
        await client.post(f"/v1/jobs/{claimed['id']}/start")
        await client.post(f"/v1/jobs/{claimed['id']}/complete", json={"result": "ok"})

        response = await client.get("/v1/jobs/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_jobs"] == 2
        assert data["by_type"]["echo"]["by_status"] == {"completed": 1}
        assert data["by_type"]["echo"]["failure_rate"] == 0.0
        assert data["by_type"]["ping"]["by_status"] == {"pending": 1}
        assert data["by_type"]["ping"]["avg_duration_ms"] is None


class TestHealthAPI:
    """Tests for health and metrics endpoints."""

    async def test_health_check(self, client: AsyncClient):
        """Test health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"

    async def test_readiness_and_liveness(self, client: AsyncClient):
        """Test probe endpoints."""
        assert (await client.get("/ready")).json() == {"ready": True}
        assert (await client.get("/live")).json() == {"alive": True}

    async def test_metrics_endpoint(self, client: AsyncClient, sample_job: dict):
        """Test Prometheus metrics endpoint."""
        await client.post("/v1/jobs", json=sample_job)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobs_created_total" in response.text
