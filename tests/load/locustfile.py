"""
Locust load testing for the job engine API.

Run with:
    locust -f tests/load/locustfile.py --host=http://localhost:8000

Or headless:
    locust -f tests/load/locustfile.py --host=http://localhost:8000 \
        --headless -u 100 -r 10 --run-time 5m
"""

import random
import uuid
from typing import Any

from locust import HttpUser, between, task

JOB_TYPES = ["ping", "echo", "sleep"]


def _job_definition() -> dict[str, Any]:
    job_type = random.choice(JOB_TYPES)
    params: dict[str, Any] = {}

    if job_type == "echo":
        params = {"message": f"Load test at {uuid.uuid4().hex[:8]}"}
    elif job_type == "sleep":
        params = {"duration_seconds": random.uniform(0.1, 1.0)}

    return {
        "type": job_type,
        "params": params,
        "priority": random.randint(0, 10),
        "max_retries": 3,
    }


class ProducerUser(HttpUser):
    """
    Simulated producer.

    Simulates realistic traffic patterns:
    - Job submissions (most common)
    - Job status checks
    - Job listing
    - Stats queries
    """

    wait_time = between(0.5, 2)  # Wait 0.5-2 seconds between requests

    def on_start(self):
        """Called when a user starts."""
        self.created_job_ids: list[int] = []

    @task(10)  # Weight: most common operation
    def submit_job(self):
        """Submit a new job."""
        response = self.client.post(
            "/v1/jobs",
            json=_job_definition(),
            name="/v1/jobs [POST]",
        )

        if response.status_code == 201:
            self.created_job_ids.append(response.json()["id"])
            # Keep only recent job IDs
            if len(self.created_job_ids) > 100:
                self.created_job_ids = self.created_job_ids[-100:]

    @task(5)
    def get_job_status(self):
        """Check status of a previously created job."""
        if not self.created_job_ids:
            return

        job_id = random.choice(self.created_job_ids)
        self.client.get(f"/v1/jobs/{job_id}", name="/v1/jobs/{job_id} [GET]")

    @task(3)
    def list_jobs(self):
        """List jobs, optionally filtered by status."""
        status_filter = random.choice([None, "pending", "running", "completed", "failed"])
        params: dict[str, Any] = {"limit": 20}

        if status_filter:
            params["status"] = status_filter

        self.client.get("/v1/jobs", params=params, name="/v1/jobs [GET]")

    @task(2)
    def get_stats(self):
        """Get job statistics."""
        self.client.get("/v1/jobs/stats", name="/v1/jobs/stats [GET]")

    @task(1)
    def health_check(self):
        """Check API health."""
        self.client.get("/health", name="/health [GET]")


class ConsumerUser(HttpUser):
    """
    Simulated worker hammering the claim path.

    Every claimed job is started and then completed or failed, so claim
    contention is exercised alongside the rest of the lifecycle.
    """

    wait_time = between(0.1, 0.5)

    def on_start(self):
        """Called when a user starts."""
        self.worker_id = f"load-worker-{uuid.uuid4().hex[:8]}"

    @task
    def claim_and_resolve(self):
        """Claim one job and resolve it."""
        response = self.client.post(
            "/v1/jobs/claim",
            json={"worker_id": self.worker_id},
            name="/v1/jobs/claim [POST]",
        )
        if response.status_code != 200:
            return

        job = response.json()["job"]
        if job is None:
            return

        body = {"worker_id": self.worker_id}
        self.client.post(f"/v1/jobs/{job['id']}/start", json=body, name="/v1/jobs/{job_id}/start [POST]")

        if random.random() < 0.9:
            self.client.post(
                f"/v1/jobs/{job['id']}/complete",
                json={**body, "result": {"ok": True}},
                name="/v1/jobs/{job_id}/complete [POST]",
            )
        else:
            self.client.post(
                f"/v1/jobs/{job['id']}/fail",
                json={**body, "error": "load test failure"},
                name="/v1/jobs/{job_id}/fail [POST]",
            )


class BurstSubmissionUser(HttpUser):
    """
    User that submits jobs in batches to test bulk insert and queue depth.
    """

    wait_time = between(5, 10)  # Wait between bursts

    @task
    def burst_submit(self):
        """Submit a burst of jobs as one batch."""
        burst_size = random.randint(10, 50)

        self.client.post(
            "/v1/jobs",
            json=[_job_definition() for _ in range(burst_size)],
            name="/v1/jobs [POST] (batch)",
        )
