"""Webhook Launcher.

Turns verified source-control webhooks into deployments, enforcing at
most one in-flight deployment per project.
"""

import asyncio
import json
from functools import lru_cache
from typing import Any, Protocol

from fastapi import status

from autodeploy.core.events import EventBus, get_event_bus
from autodeploy.core.exceptions import WebhookRejection
from autodeploy.core.registry import ActiveDeploymentRegistry
from autodeploy.core.signatures import verify_signature
from autodeploy.core.store import DeploymentStore, get_store
from autodeploy.models.deployment import (
    ActiveDeployment,
    DeploymentCreate,
    DeploymentReport,
    DeploymentStatus,
)
from autodeploy.models.project import Project
from autodeploy.models.webhook import WebhookAction, WebhookResponse
from autodeploy.utils.logging import get_logger


class DeploymentRunner(Protocol):
    """What the launcher needs from the orchestrator."""

    async def run(
        self, project: Project, deployment_id: int, commit_hash: str | None = None
    ) -> DeploymentReport: ...


class WebhookLauncher:
    """Processes inbound webhooks and launches deployments asynchronously."""

    def __init__(
        self,
        store: DeploymentStore | None = None,
        orchestrator: DeploymentRunner | None = None,
        registry: ActiveDeploymentRegistry | None = None,
        events: EventBus | None = None,
    ):
        if orchestrator is None:
            from autodeploy.core.orchestrator import get_orchestrator

            orchestrator = get_orchestrator()

        self.store = store or get_store()
        self.orchestrator = orchestrator
        self.registry = registry or ActiveDeploymentRegistry()
        self.events = events or get_event_bus()
        self.logger = get_logger("launcher")
        self._launch_lock = asyncio.Lock()
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def process_webhook(
        self, event: str | None, signature: str | None, body: bytes
    ) -> WebhookResponse:
        """Authenticate a webhook and dispatch it by event type.

        Raises:
            WebhookRejection: 400 for malformed payloads, 404 for unknown
                repositories, 401 for signature mismatches.
        """
        self.logger.info("launcher.webhook.received", github_event=event)

        payload = self._parse_payload(body)
        repository = payload.get("repository")
        repo_name = repository.get("full_name") if isinstance(repository, dict) else None
        if not repo_name:
            self.logger.warning("launcher.webhook.missing_repository")
            raise WebhookRejection(
                status.HTTP_400_BAD_REQUEST,
                "Invalid webhook payload: missing repository",
            )

        project = await self.store.get_project_by_repo(repo_name)
        if project is None:
            available = [p.repository for p in await self.store.get_all_projects()]
            self.logger.warning(
                "launcher.webhook.unknown_repository",
                repository=repo_name,
                available_repositories=available,
            )
            raise WebhookRejection(
                status.HTTP_404_NOT_FOUND,
                f"Repository not configured for deployment: {repo_name}",
                {"repository": repo_name, "available_repositories": available},
            )

        if project.webhook_secret:
            if not verify_signature(project.webhook_secret, body, signature):
                self.logger.warning(
                    "launcher.webhook.bad_signature", project=project.name
                )
                raise WebhookRejection(
                    status.HTTP_401_UNAUTHORIZED,
                    "Webhook signature verification failed",
                    {"project": project.name},
                )
            self.logger.debug("launcher.webhook.signature_verified", project=project.name)

        if event == "push":
            return await self._handle_push(payload, project)
        if event == "pull_request":
            return self._handle_pull_request(payload, project)
        if event == "release":
            return await self._handle_release(payload, project)

        self.logger.info("launcher.webhook.ignored", github_event=event, project=project.name)
        return WebhookResponse(
            message=f"Event {event} ignored",
            action=WebhookAction.IGNORED,
            project=project.name,
        )

    def _parse_payload(self, body: bytes) -> dict[str, Any]:
        try:
            payload = json.loads(body or b"null")
        except ValueError as exc:
            raise WebhookRejection(
                status.HTTP_400_BAD_REQUEST,
                f"Invalid webhook payload: {exc}",
            ) from exc
        if not isinstance(payload, dict):
            raise WebhookRejection(
                status.HTTP_400_BAD_REQUEST,
                "Invalid webhook payload",
            )
        return payload

    async def _handle_push(self, payload: dict[str, Any], project: Project) -> WebhookResponse:
        ref = payload.get("ref") or ""
        branch = ref.removeprefix("refs/heads/")
        commit = payload.get("head_commit") or {}

        if ref != project.main_ref:
            self.logger.info(
                "launcher.push.ignored_branch",
                project=project.name,
                branch=branch,
                main_branch=project.main_branch,
            )
            return WebhookResponse(
                message=f"Push to {branch} ignored - not main branch ({project.main_branch})",
                action=WebhookAction.IGNORED,
                project=project.name,
            )

        author = (commit.get("author") or {}).get("name") or (
            payload.get("pusher") or {}
        ).get("name")
        return await self.start_deployment(
            project,
            DeploymentCreate(
                commit_hash=commit.get("id"),
                commit_message=commit.get("message"),
                branch=branch,
                trigger="push",
                triggered_by=author or "webhook",
            ),
        )

    def _handle_pull_request(
        self, payload: dict[str, Any], project: Project
    ) -> WebhookResponse:
        action = payload.get("action")
        number = (payload.get("pull_request") or {}).get("number")
        self.logger.info(
            "launcher.pull_request.received",
            project=project.name,
            pr_action=action,
            number=number,
        )
        return WebhookResponse(
            message=f"Pull request {action} acknowledged",
            action=WebhookAction.ACKNOWLEDGED,
            project=project.name,
        )

    async def _handle_release(
        self, payload: dict[str, Any], project: Project
    ) -> WebhookResponse:
        action = payload.get("action")
        release = payload.get("release") or {}
        tag = release.get("tag_name")
        self.logger.info(
            "launcher.release.received", project=project.name, release_action=action, tag=tag
        )

        if action != "published":
            return WebhookResponse(
                message=f"Release {action} acknowledged",
                action=WebhookAction.ACKNOWLEDGED,
                project=project.name,
            )

        return await self.start_deployment(
            project,
            DeploymentCreate(
                commit_hash=release.get("target_commitish"),
                commit_message=f"Release {tag}" if tag else None,
                branch=project.main_branch,
                trigger="release",
                triggered_by=(release.get("author") or {}).get("login") or "webhook",
            ),
        )

    async def start_deployment(
        self, project: Project, meta: DeploymentCreate
    ) -> WebhookResponse:
        """Create, register and launch a deployment unless one is already running."""
        async with self._launch_lock:
            if self.registry.is_active(project.name):
                self.logger.warning(
                    "launcher.deployment.already_running",
                    project=project.name,
                    deployment_id=self.registry.get(project.name),
                )
                return WebhookResponse(
                    message="Deployment already in progress",
                    action=WebhookAction.IGNORED,
                    deployment_id=self.registry.get(project.name),
                    project=project.name,
                )

            deployment_id = await self.store.create_deployment(project.id, meta)
            await self.registry.try_register(project.name, deployment_id)

        self.logger.info(
            "launcher.deployment.started",
            project=project.name,
            deployment_id=deployment_id,
            commit=meta.commit_hash,
            trigger=meta.trigger,
        )
        task = asyncio.create_task(
            self._run_deployment(project, deployment_id, meta),
            name=f"deployment-{deployment_id}",
        )
        self._tasks[project.name] = task
        task.add_done_callback(lambda t: self._forget(project.name, t))

        return WebhookResponse(
            message=f"Deployment started for {project.name}",
            action=WebhookAction.DEPLOY,
            deployment_id=deployment_id,
            project=project.name,
        )

    async def _run_deployment(
        self, project: Project, deployment_id: int, meta: DeploymentCreate
    ) -> None:
        """Announce and run the deployment; the registry entry is released on every path."""
        try:
            await self.events.notify(
                deployment_id,
                "started",
                {
                    "project": project.name,
                    "trigger": meta.trigger,
                    "branch": meta.branch,
                    "commit": meta.commit_hash,
                },
            )
            await self.orchestrator.run(project, deployment_id, meta.commit_hash)
        except asyncio.CancelledError:
            self.logger.warning(
                "launcher.deployment.cancelled", project=project.name, deployment_id=deployment_id
            )
            await self._ensure_terminal(
                deployment_id, DeploymentStatus.CANCELLED, "Deployment cancelled"
            )
            await self.events.notify(deployment_id, "cancelled", {"project": project.name})
            raise
        except Exception as exc:
            self.logger.error(
                "launcher.deployment.failed",
                project=project.name,
                deployment_id=deployment_id,
                error=str(exc),
            )
            await self._ensure_terminal(
                deployment_id, DeploymentStatus.FAILED, str(exc) or type(exc).__name__
            )
        finally:
            await self.registry.release(project.name)

    def _forget(self, project_name: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(project_name) is task:
            del self._tasks[project_name]

    async def _ensure_terminal(
        self, deployment_id: int, terminal: DeploymentStatus, error: str
    ) -> None:
        """Write a terminal status unless the orchestrator already did."""
        deployment = await self.store.get_deployment(deployment_id)
        if deployment is not None and not deployment.status.is_terminal:
            await self.store.update_deployment_status(deployment_id, terminal, error=error)

    def active_deployments(self) -> list[ActiveDeployment]:
        return self.registry.snapshot()

    async def cancel_deployment(self, project_name: str) -> bool:
        """Cancel a project's in-flight deployment; returns False if none is running."""
        task = self._tasks.get(project_name)
        if task is None or task.done():
            return False

        deployment_id = self.registry.get(project_name)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        if deployment_id is not None and self.registry.get(project_name) == deployment_id:
            # Cancelled before its first step, so the run never reached its cleanup
            await self._ensure_terminal(
                deployment_id, DeploymentStatus.CANCELLED, "Deployment cancelled"
            )
            await self.events.notify(deployment_id, "cancelled", {"project": project_name})
            await self.registry.release(project_name)
        return True

    async def wait_for_idle(self) -> None:
        """Wait until every launched deployment has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all in-flight deployments."""
        for project_name in list(self._tasks):
            await self.cancel_deployment(project_name)


@lru_cache(maxsize=1)
def get_launcher() -> WebhookLauncher:
    """Get the launcher singleton."""
    return WebhookLauncher()
