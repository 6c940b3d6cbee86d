"""Pytest configuration and fixtures."""

from collections.abc import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from autodeploy.api.deps import get_deployment_store, get_events, get_webhook_launcher
from autodeploy.core.events import EventBus
from autodeploy.core.launcher import WebhookLauncher
from autodeploy.core.orchestrator import DeploymentOrchestrator
from autodeploy.core.registry import ActiveDeploymentRegistry
from autodeploy.core.store import InMemoryDeploymentStore
from autodeploy.main import app
from autodeploy.models.deployment import DeploymentCreate
from autodeploy.models.project import Project, ProjectCreate
from autodeploy.phases.base import PhaseContext
from autodeploy.services.health_monitor import HealthMonitor
from autodeploy.utils.deployment_logger import DeploymentLogger
from tests.fakes import PRODUCTION_URL, FakeClock, FakeShell, status_transport


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryDeploymentStore:
    """Create a fresh in-memory store."""
    return InMemoryDeploymentStore()


@pytest.fixture
def events() -> EventBus:
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def health(clock: FakeClock) -> HealthMonitor:
    """Health monitor whose every endpoint answers 200."""
    return HealthMonitor(
        transport=status_transport(lambda request: 200),
        sleep=clock.sleep,
        clock=clock,
    )


@pytest.fixture
def project_data(tmp_path) -> ProjectCreate:
    return ProjectCreate(
        name="P",
        repository="acme/p",
        production_url=PRODUCTION_URL,
        deploy_path=str(tmp_path),
        main_branch="main",
    )


@pytest.fixture
async def project(store: InMemoryDeploymentStore, project_data: ProjectCreate) -> Project:
    """Register the test project."""
    return await store.upsert_project(project_data)


@pytest.fixture
def make_context(store, events, health, shell) -> Callable[..., PhaseContext]:
    """Build a phase context for a pending deployment of ``project``."""

    async def factory(project: Project, **overrides) -> PhaseContext:
        deployment_id = await store.create_deployment(
            project.id, DeploymentCreate(commit_hash="abc1234")
        )
        params = {
            "deployment_id": deployment_id,
            "project": project,
            "logger": DeploymentLogger(deployment_id, store),
            "health": health,
            "shell": shell,
            "commit_hash": "abc1234",
            "notifier": events,
        }
        params.update(overrides)
        return PhaseContext(**params)

    return factory


@pytest.fixture
def orchestrator(store, events, health, shell) -> DeploymentOrchestrator:
    """Orchestrator wired to fakes only."""
    return DeploymentOrchestrator(store=store, events=events, health=health, shell=shell)


@pytest.fixture
def launcher(store, events, orchestrator) -> WebhookLauncher:
    return WebhookLauncher(
        store=store,
        orchestrator=orchestrator,
        registry=ActiveDeploymentRegistry(),
        events=events,
    )


@pytest.fixture
async def client(store, events, launcher) -> AsyncClient:
    """Create an async test client wired to the test store and launcher."""
    app.dependency_overrides[get_deployment_store] = lambda: store
    app.dependency_overrides[get_events] = lambda: events
    app.dependency_overrides[get_webhook_launcher] = lambda: launcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Cleanup after test
    await launcher.shutdown()
    app.dependency_overrides.clear()
