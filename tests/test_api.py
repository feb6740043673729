"""
API tests for job history, run-now endpoints and service endpoints
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from hrm_jobs.config import JobsSettings
from hrm_jobs.main import create_app
from hrm_jobs.models.activity import AuditEvent
from hrm_jobs.models.leave import Employee, LeaveBalance, LeavePolicy
from hrm_jobs.models.retention import RetentionPolicy
from hrm_jobs.utils.timeutil import utcnow

from conftest import OTHER_TENANT, TENANT

HEADERS = {"X-Tenant-ID": TENANT}


@pytest.fixture
def client(session_factory, tenants):
    app = create_app(
        session_factory=session_factory,
        settings=JobsSettings(accrual_interval=0, retention_interval=0),
        jobs_enabled=True,
        configure_logging=False,
    )
    with TestClient(app) as test_client:
        yield test_client


def test_health_endpoint(client):
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "jobs_running": True}
    assert response.headers["X-API-Version"] == "v1"


def test_prometheus_endpoint(client):
    client.get("/v1/jobs/queue")
    response = client.get("/v1/metrics/prometheus")
    assert response.status_code == 200
    assert "hrm_jobs_queue_depth" in response.text


class TestTenantResolution:

    def test_missing_tenant(self, client):
        response = client.get("/v1/jobs/runs")
        assert response.status_code == 400
        assert response.json()["detail"] == "tenant_required"

    def test_unknown_tenant(self, client):
        response = client.get("/v1/jobs/runs", headers={"X-Tenant-ID": "initech"})
        assert response.status_code == 404
        assert response.json()["detail"] == "tenant_not_found"


class TestRunEndpoints:

    @pytest.fixture
    def accrual_setup(self, seed):
        seed(
            Employee(id="e1", tenant_id=TENANT, start_date=date(2020, 1, 1)),
            LeavePolicy(tenant_id=TENANT, leave_type_id="annual", accrual_rate=Decimal("1.25"),
                        accrual_period="monthly"),
        )

    def test_run_accruals(self, client, accrual_setup):
        response = client.post("/v1/leave/accruals/run", headers=HEADERS)
        assert response.status_code == 200
        assert response.json() == {"policies_processed": 1, "employees_accrued": 1}

        again = client.post("/v1/leave/accruals/run", headers=HEADERS)
        assert again.json() == {"policies_processed": 0, "employees_accrued": 0}

    def test_run_accruals_failure(self, client, engine, accrual_setup):
        LeaveBalance.__table__.drop(engine)

        response = client.post("/v1/leave/accruals/run", headers=HEADERS)

        assert response.status_code == 500
        assert response.json()["detail"] == "accrual_failed"
        runs = client.get("/v1/jobs/runs", headers=HEADERS, params={"job_type": "leave_accrual"}).json()
        assert [r["status"] for r in runs] == ["failed"]

    def test_run_retention(self, client, seed):
        now = utcnow()
        seed(
            AuditEvent(tenant_id=TENANT, action="old", created_at=now - timedelta(days=120)),
            AuditEvent(tenant_id=TENANT, action="new", created_at=now - timedelta(days=1)),
            RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=90),
            RetentionPolicy(tenant_id=TENANT, data_category="notifications", retention_days=30),
        )

        response = client.post("/v1/gdpr/retention/run", headers=HEADERS, json={"categories": ["audit"]})

        assert response.status_code == 200
        body = response.json()
        assert body["tenant_id"] == TENANT
        assert [(r["data_category"], r["status"], r["deleted_count"]) for r in body["results"]] == [
            ("audit", "completed", 1),
        ]

    def test_run_retention_without_body(self, client, seed):
        seed(RetentionPolicy(tenant_id=TENANT, data_category="notifications", retention_days=30))
        response = client.post("/v1/gdpr/retention/run", headers=HEADERS)
        assert response.status_code == 200
        assert [r["data_category"] for r in response.json()["results"]] == ["notifications"]


class TestJobRunListing:

    @pytest.fixture
    def history(self, client, seed):
        seed(RetentionPolicy(tenant_id=TENANT, data_category="audit", retention_days=30))
        client.post("/v1/gdpr/retention/run", headers=HEADERS)
        client.post("/v1/leave/accruals/run", headers=HEADERS)
        client.post("/v1/leave/accruals/run", headers={"X-Tenant-ID": OTHER_TENANT})

    def test_list_runs(self, client, history):
        response = client.get("/v1/jobs/runs", headers=HEADERS)
        assert response.status_code == 200
        assert response.headers["X-Total-Count"] == "2"
        runs = response.json()
        assert [r["job_type"] for r in runs] == ["leave_accrual", "gdpr_retention"]
        assert all(r["tenant_id"] == TENANT for r in runs)

    def test_filters_and_paging(self, client, history):
        response = client.get("/v1/jobs/runs", headers=HEADERS, params={"job_type": "gdpr_retention"})
        assert [r["job_type"] for r in response.json()] == ["gdpr_retention"]

        response = client.get("/v1/jobs/runs", headers=HEADERS, params={"limit": 1, "offset": 1})
        assert response.headers["X-Total-Count"] == "2"
        assert [r["job_type"] for r in response.json()] == ["gdpr_retention"]

        response = client.get("/v1/jobs/runs", headers=HEADERS, params={"started_from": "2099-01-01T00:00:00Z"})
        assert response.json() == []

    def test_limit_bounds(self, client):
        assert client.get("/v1/jobs/runs", headers=HEADERS, params={"limit": 0}).status_code == 422

    def test_get_run(self, client, history):
        run_id = client.get("/v1/jobs/runs", headers=HEADERS).json()[0]["id"]

        response = client.get(f"/v1/jobs/runs/{run_id}", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["details"] == {"policies_processed": 0, "employees_accrued": 0}

        other = client.get(f"/v1/jobs/runs/{run_id}", headers={"X-Tenant-ID": OTHER_TENANT})
        assert other.status_code == 404

    def test_queue_stats(self, client):
        response = client.get("/v1/jobs/queue")
        assert response.status_code == 200
        assert response.json() == {"depth": 0, "max": 128, "saturation": 0.0, "dropped": 0, "running": True}
