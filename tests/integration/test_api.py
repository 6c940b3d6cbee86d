"""Integration tests for API endpoints."""

import json

import pytest
from httpx import AsyncClient

from autodeploy.core.signatures import compute_signature


def push_payload(repo: str = "acme/p", ref: str = "refs/heads/main") -> bytes:
    return json.dumps(
        {
            "ref": ref,
            "repository": {"full_name": repo},
            "head_commit": {"id": "abc1234", "message": "Ship it", "author": {"name": "dev"}},
            "pusher": {"name": "dev"},
        }
    ).encode()


def webhook_headers(event: str = "push", signature: str | None = None) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": "delivery-1",
    }
    if signature:
        headers["X-Hub-Signature-256"] = signature
    return headers


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient, project):
        """Test health check returns healthy status."""
        response = await client.get("/v1/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["projects"] == 1
        assert data["active_deployments"] == []
        assert "version" in data
        assert "environment" in data
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/v1/health", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert "X-Response-Time" in response.headers


class TestProjectEndpoints:
    """Tests for project registration endpoints."""

    @pytest.mark.asyncio
    async def test_register_and_get_project(self, client: AsyncClient, tmp_path):
        response = await client.post(
            "/v1/projects",
            json={
                "name": "shop",
                "repository": "acme/shop",
                "production_url": "https://shop.example.com",
                "deploy_path": str(tmp_path),
                "webhook_secret": "s3cret",
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["name"] == "shop"
        assert data["has_webhook_secret"] is True
        assert "webhook_secret" not in data

        response = await client.get("/v1/projects/shop")
        assert response.status_code == 200
        assert response.json()["repository"] == "acme/shop"

    @pytest.mark.asyncio
    async def test_list_projects(self, client: AsyncClient, project):
        response = await client.get("/v1/projects")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["projects"][0]["name"] == "P"

    @pytest.mark.asyncio
    async def test_invalid_project_is_rejected(self, client: AsyncClient):
        response = await client.post(
            "/v1/projects",
            json={"name": "bad name", "repository": "acme", "production_url": "x"},
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_repository_conflict(self, client: AsyncClient, project, tmp_path):
        response = await client.post(
            "/v1/projects",
            json={
                "name": "Q",
                "repository": "acme/p",
                "production_url": "https://q.example.com",
                "deploy_path": str(tmp_path),
            },
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_unknown_project(self, client: AsyncClient):
        response = await client.get("/v1/projects/missing")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_deactivate_project(self, client: AsyncClient, project):
        response = await client.delete("/v1/projects/P")
        assert response.status_code == 204

        response = await client.get("/v1/projects/P")
        assert response.status_code == 404

        response = await client.post(
            "/v1/webhooks/github", content=push_payload(), headers=webhook_headers()
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_project_stats(self, client: AsyncClient, project, launcher):
        await client.post("/v1/webhooks/github", content=push_payload(), headers=webhook_headers())
        await launcher.wait_for_idle()

        response = await client.get("/v1/projects/P/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["total_deployments"] == 1
        assert data["successful_deployments"] == 1


class TestWebhookEndpoint:
    """Tests for webhook ingress."""

    @pytest.mark.asyncio
    async def test_push_to_main_deploys(self, client: AsyncClient, project, launcher):
        response = await client.post(
            "/v1/webhooks/github", content=push_payload(), headers=webhook_headers()
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["action"] == "deploy"
        assert data["project"] == "P"
        deployment_id = data["deployment_id"]

        await launcher.wait_for_idle()

        response = await client.get(f"/v1/deployments/{deployment_id}")
        assert response.json()["status"] == "success"

    @pytest.mark.asyncio
    async def test_feature_branch_is_ignored(self, client: AsyncClient, project):
        response = await client.post(
            "/v1/webhooks/github",
            content=push_payload(ref="refs/heads/feature/x"),
            headers=webhook_headers(),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["action"] == "ignored"
        assert "deployment_id" not in data

    @pytest.mark.asyncio
    async def test_missing_repository(self, client: AsyncClient):
        response = await client.post(
            "/v1/webhooks/github", content=b'{"ref": "refs/heads/main"}', headers=webhook_headers()
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_unknown_repository(self, client: AsyncClient, project):
        response = await client.post(
            "/v1/webhooks/github",
            content=push_payload(repo="acme/other"),
            headers=webhook_headers(),
        )

        assert response.status_code == 404
        data = response.json()
        assert data["success"] is False
        assert data["available_repositories"] == ["acme/p"]

    @pytest.mark.asyncio
    async def test_signature_is_enforced(self, client: AsyncClient, store, project_data, launcher):
        project_data.webhook_secret = "s3cret"
        await store.upsert_project(project_data)
        body = push_payload()

        rejected = await client.post(
            "/v1/webhooks/github",
            content=body,
            headers=webhook_headers(signature="sha256=" + "0" * 64),
        )
        accepted = await client.post(
            "/v1/webhooks/github",
            content=body,
            headers=webhook_headers(signature=compute_signature("s3cret", body)),
        )
        await launcher.wait_for_idle()

        assert rejected.status_code == 401
        assert accepted.status_code == 200
        assert accepted.json()["action"] == "deploy"

    @pytest.mark.asyncio
    async def test_ping_is_ignored(self, client: AsyncClient, project):
        response = await client.post(
            "/v1/webhooks/github", content=push_payload(), headers=webhook_headers(event="ping")
        )

        assert response.status_code == 200
        assert response.json()["action"] == "ignored"


class TestDeploymentEndpoints:
    """Tests for deployment history endpoints."""

    @pytest.fixture
    async def finished_deployment(self, client: AsyncClient, project, launcher) -> int:
        response = await client.post(
            "/v1/webhooks/github", content=push_payload(), headers=webhook_headers()
        )
        await launcher.wait_for_idle()
        return response.json()["deployment_id"]

    @pytest.mark.asyncio
    async def test_list_deployments(self, client: AsyncClient, finished_deployment):
        response = await client.get("/v1/deployments", params={"project": "P"})

        assert response.status_code == 200
        data = response.json()
        assert [d["id"] for d in data["deployments"]] == [finished_deployment]
        assert data["limit"] == 20
        assert data["offset"] == 0

    @pytest.mark.asyncio
    async def test_list_for_unknown_project(self, client: AsyncClient):
        response = await client.get("/v1/deployments", params={"project": "missing"})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_get_deployment_and_logs(self, client: AsyncClient, finished_deployment):
        response = await client.get(f"/v1/deployments/{finished_deployment}")
        assert response.status_code == 200
        data = response.json()
        assert data["commit_hash"] == "abc1234"
        assert data["phase"] == "monitoring"
        assert data["completed_at"] is not None

        response = await client.get(f"/v1/deployments/{finished_deployment}/logs")
        assert response.status_code == 200
        phases = {entry["phase"] for entry in response.json()}
        assert {"validation", "production", "monitoring"} <= phases

    @pytest.mark.asyncio
    async def test_unknown_deployment(self, client: AsyncClient):
        response = await client.get("/v1/deployments/999")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_no_active_deployments(self, client: AsyncClient, finished_deployment):
        response = await client.get("/v1/deployments/active")

        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_cancel_without_active_deployment(self, client: AsyncClient, project):
        response = await client.post("/v1/deployments/P/cancel")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_stream_of_finished_deployment(self, client: AsyncClient, finished_deployment):
        response = await client.get(f"/v1/deployments/{finished_deployment}/stream")

        assert response.status_code == 200
        assert "event: connected" in response.text
        assert '"status": "success"' in response.text
