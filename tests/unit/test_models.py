"""Unit tests for data models."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from autodeploy.core.store import apply_status
from autodeploy.models.deployment import (
    Deployment,
    DeploymentError,
    DeploymentPhase,
    DeploymentReport,
    DeploymentStatus,
)
from autodeploy.models.project import Project, ProjectCreate, ProjectResponse


def project_kwargs(**overrides) -> dict:
    data = {
        "name": "my-app",
        "repository": "acme/my-app",
        "production_url": "https://my-app.example.com",
        "deploy_path": "/srv/my-app",
    }
    data.update(overrides)
    return data


class TestProjectModels:
    """Tests for project-related models."""

    def test_project_create_defaults(self):
        """Test ProjectCreate fills in pipeline defaults."""
        project = ProjectCreate(**project_kwargs())

        assert project.main_branch == "main"
        assert project.environment == "production"
        assert project.health_check_interval_ms == 30_000
        assert project.validation_checks is None

    @pytest.mark.parametrize(
        "field, value",
        [
            ("name", "My App"),  # spaces not allowed
            ("name", ""),
            ("repository", "no-owner"),
            ("repository", "acme/my app"),
            ("health_check_interval_ms", 0),
        ],
    )
    def test_project_create_rejects_invalid(self, field, value):
        """Test ProjectCreate rejects malformed fields."""
        with pytest.raises(ValidationError):
            ProjectCreate(**project_kwargs(**{field: value}))

    def test_main_ref(self):
        project = Project(id=1, **project_kwargs(main_branch="release"))

        assert project.main_ref == "refs/heads/release"

    def test_response_hides_secret(self):
        """Test ProjectResponse never carries the webhook secret."""
        project = Project(id=1, **project_kwargs(webhook_secret="s3cret"))

        response = ProjectResponse.from_project(project)

        assert response.has_webhook_secret is True
        assert "s3cret" not in response.model_dump_json()


class TestDeploymentModels:
    """Tests for deployment models and status transitions."""

    @pytest.mark.parametrize(
        "status, terminal",
        [
            (DeploymentStatus.PENDING, False),
            (DeploymentStatus.RUNNING, False),
            (DeploymentStatus.SUCCESS, True),
            (DeploymentStatus.FAILED, True),
            (DeploymentStatus.CANCELLED, True),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert status.is_terminal is terminal

    def test_phase_order(self):
        assert [p.value for p in DeploymentPhase] == [
            "validation",
            "staging",
            "production",
            "monitoring",
        ]

    def test_terminal_status_sets_completion(self):
        deployment = Deployment(
            id=1, project_id=1, started_at=datetime.utcnow() - timedelta(seconds=2)
        )

        apply_status(deployment, DeploymentStatus.RUNNING, phase=DeploymentPhase.STAGING)
        assert deployment.completed_at is None

        apply_status(deployment, DeploymentStatus.FAILED, error="boom")

        assert deployment.phase == DeploymentPhase.STAGING
        assert deployment.error_message == "boom"
        assert deployment.completed_at is not None
        assert deployment.duration_ms >= 2000

    def test_terminal_status_is_never_overwritten(self):
        deployment = Deployment(id=1, project_id=1)
        apply_status(deployment, DeploymentStatus.CANCELLED)
        completed_at = deployment.completed_at

        apply_status(deployment, DeploymentStatus.SUCCESS)

        assert deployment.status == DeploymentStatus.CANCELLED
        assert deployment.completed_at == completed_at


class TestDeploymentReport:
    """Tests for the end-of-run report."""

    def test_summary_lines(self):
        report = DeploymentReport(
            deployment_id=7,
            project_name="P",
            production_url="https://p.example.com",
            start_time=datetime.utcnow(),
            duration_ms=65_400,
            phases_completed=2,
            errors=[DeploymentError(message="deploy failed", phase="production")],
        )

        lines = report.summary_lines()

        assert lines[0] == "DEPLOYMENT SUMMARY - 7"
        assert "Total Duration: 65s" in lines
        assert "Success: NO" in lines
        assert "Phases Completed: 2/4" in lines
        assert "   - production: deploy failed" in lines
