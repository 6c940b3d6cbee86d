"""SQLite-backed deployment store."""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from autodeploy.core.exceptions import AutodeployError, DeploymentNotFoundError
from autodeploy.core.store import apply_status, compute_stats
from autodeploy.models.deployment import (
    Deployment,
    DeploymentCreate,
    DeploymentLogEntry,
    DeploymentPhase,
    DeploymentStatus,
    LogLevel,
)
from autodeploy.models.project import Project, ProjectCreate, ProjectStats
from autodeploy.utils.logging import get_logger, resolve_path

logger = get_logger("sqlite_store")

# Project fields kept as a JSON blob rather than columns
PIPELINE_FIELDS = (
    "validation_checks",
    "staging_deploy_command",
    "production_deploy_command",
    "backup_command",
    "rollback_command",
    "health_endpoints",
)


class SQLiteDeploymentStore:
    """Repository for projects, deployments and deployment logs in SQLite."""

    def __init__(self, db_path: Path | str):
        self.db_path = resolve_path(db_path)
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    repository TEXT NOT NULL,
                    production_url TEXT NOT NULL,
                    staging_url TEXT,
                    deploy_path TEXT NOT NULL,
                    main_branch TEXT NOT NULL DEFAULT 'main',
                    webhook_secret TEXT,
                    environment TEXT NOT NULL DEFAULT 'production',
                    health_check_interval_ms INTEGER NOT NULL DEFAULT 30000,
                    deployment_timeout_ms INTEGER NOT NULL DEFAULT 600000,
                    pipeline TEXT NOT NULL DEFAULT '{}',
                    active INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deployments (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL,
                    commit_hash TEXT,
                    commit_message TEXT,
                    branch TEXT,
                    trigger TEXT NOT NULL DEFAULT 'push',
                    triggered_by TEXT NOT NULL DEFAULT 'webhook',
                    status TEXT NOT NULL DEFAULT 'pending',
                    phase TEXT,
                    started_at TEXT NOT NULL,
                    completed_at TEXT,
                    duration_ms INTEGER,
                    error_message TEXT,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deployment_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    deployment_id INTEGER NOT NULL,
                    phase TEXT NOT NULL,
                    level TEXT NOT NULL DEFAULT 'info',
                    message TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    FOREIGN KEY (deployment_id) REFERENCES deployments(id) ON DELETE CASCADE
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_projects_repository ON projects(repository)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_deployments_project_id ON deployments(project_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_deployment_logs_deployment_id "
                "ON deployment_logs(deployment_id)"
            )
            conn.commit()

        logger.debug("sqlite_store.initialized", db_path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
        finally:
            conn.close()

    def _row_to_project(self, row: sqlite3.Row) -> Project:
        """Convert a database row to a Project."""
        return Project(
            id=row["id"],
            name=row["name"],
            repository=row["repository"],
            production_url=row["production_url"],
            staging_url=row["staging_url"],
            deploy_path=row["deploy_path"],
            main_branch=row["main_branch"],
            webhook_secret=row["webhook_secret"],
            environment=row["environment"],
            health_check_interval_ms=row["health_check_interval_ms"],
            deployment_timeout_ms=row["deployment_timeout_ms"],
            active=bool(row["active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            **json.loads(row["pipeline"]),
        )

    def _row_to_deployment(self, row: sqlite3.Row) -> Deployment:
        """Convert a database row to a Deployment."""
        return Deployment(
            id=row["id"],
            project_id=row["project_id"],
            commit_hash=row["commit_hash"],
            commit_message=row["commit_message"],
            branch=row["branch"],
            trigger=row["trigger"],
            triggered_by=row["triggered_by"],
            status=DeploymentStatus(row["status"]),
            phase=DeploymentPhase(row["phase"]) if row["phase"] else None,
            started_at=datetime.fromisoformat(row["started_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
            ),
            duration_ms=row["duration_ms"],
            error_message=row["error_message"],
        )

    async def upsert_project(self, data: ProjectCreate) -> Project:
        """Insert a project or update the one with the same name."""
        now = datetime.utcnow().isoformat()
        pipeline = json.dumps(data.model_dump(include=set(PIPELINE_FIELDS), exclude_none=True))

        with self._get_connection() as conn:
            clash = conn.execute(
                "SELECT name FROM projects WHERE repository = ? AND active = 1 AND name != ?",
                (data.repository, data.name),
            ).fetchone()
            if clash:
                raise AutodeployError(
                    f"Repository {data.repository} already registered by {clash['name']}",
                    {"repository": data.repository, "project": clash["name"]},
                )

            conn.execute(
                """
                INSERT INTO projects
                (name, repository, production_url, staging_url, deploy_path,
                 main_branch, webhook_secret, environment, health_check_interval_ms,
                 deployment_timeout_ms, pipeline, active, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    repository = excluded.repository,
                    production_url = excluded.production_url,
                    staging_url = excluded.staging_url,
                    deploy_path = excluded.deploy_path,
                    main_branch = excluded.main_branch,
                    webhook_secret = excluded.webhook_secret,
                    environment = excluded.environment,
                    health_check_interval_ms = excluded.health_check_interval_ms,
                    deployment_timeout_ms = excluded.deployment_timeout_ms,
                    pipeline = excluded.pipeline,
                    active = 1,
                    updated_at = excluded.updated_at
                """,
                (
                    data.name,
                    data.repository,
                    data.production_url,
                    data.staging_url,
                    data.deploy_path,
                    data.main_branch,
                    data.webhook_secret,
                    data.environment,
                    data.health_check_interval_ms,
                    data.deployment_timeout_ms,
                    pipeline,
                    now,
                    now,
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM projects WHERE name = ?", (data.name,)
            ).fetchone()

        logger.info("sqlite_store.project_saved", project=data.name, repository=data.repository)
        return self._row_to_project(row)

    async def get_project(self, name: str) -> Project | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE name = ? AND active = 1", (name,)
            ).fetchone()
        return self._row_to_project(row) if row else None

    async def get_project_by_repo(self, repository: str) -> Project | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM projects WHERE repository = ? AND active = 1",
                (repository,),
            ).fetchone()
        return self._row_to_project(row) if row else None

    async def get_all_projects(self) -> list[Project]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM projects WHERE active = 1 ORDER BY name"
            ).fetchall()
        return [self._row_to_project(row) for row in rows]

    async def deactivate_project(self, name: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE projects SET active = 0, updated_at = ? WHERE name = ? AND active = 1",
                (datetime.utcnow().isoformat(), name),
            )
            conn.commit()
            changed = cursor.rowcount > 0

        if changed:
            logger.info("sqlite_store.project_deactivated", project=name)
        return changed

    async def create_deployment(self, project_id: int, meta: DeploymentCreate) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO deployments
                (project_id, commit_hash, commit_message, branch, trigger,
                 triggered_by, status, started_at)
                VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)
                """,
                (
                    project_id,
                    meta.commit_hash,
                    meta.commit_message,
                    meta.branch,
                    meta.trigger,
                    meta.triggered_by,
                    datetime.utcnow().isoformat(),
                ),
            )
            conn.commit()
            deployment_id = cursor.lastrowid

        logger.info(
            "sqlite_store.deployment_created",
            deployment_id=deployment_id,
            project_id=project_id,
        )
        return deployment_id

    async def update_deployment_status(
        self,
        deployment_id: int,
        status: DeploymentStatus,
        phase: DeploymentPhase | None = None,
        error: str | None = None,
    ) -> None:
        deployment = await self.get_deployment(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(deployment_id)
        apply_status(deployment, status, phase, error)

        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE deployments
                SET status = ?, phase = ?, completed_at = ?, duration_ms = ?,
                    error_message = ?
                WHERE id = ?
                """,
                (
                    deployment.status.value,
                    deployment.phase.value if deployment.phase else None,
                    deployment.completed_at.isoformat() if deployment.completed_at else None,
                    deployment.duration_ms,
                    deployment.error_message,
                    deployment_id,
                ),
            )
            conn.commit()

    async def add_deployment_log(
        self, deployment_id: int, phase: str, level: LogLevel, message: str
    ) -> None:
        with self._get_connection() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO deployment_logs (deployment_id, phase, level, message, timestamp)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (deployment_id, phase, level, message, datetime.utcnow().isoformat()),
                )
            except sqlite3.IntegrityError as exc:
                raise DeploymentNotFoundError(deployment_id) from exc
            conn.commit()

    async def get_deployment(self, deployment_id: int) -> Deployment | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM deployments WHERE id = ?", (deployment_id,)
            ).fetchone()
        return self._row_to_deployment(row) if row else None

    async def list_deployments(
        self, project_id: int | None = None, limit: int = 20, offset: int = 0
    ) -> list[Deployment]:
        query = "SELECT * FROM deployments"
        params: list[int] = []
        if project_id is not None:
            query += " WHERE project_id = ?"
            params.append(project_id)
        query += " ORDER BY started_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_deployment(row) for row in rows]

    async def get_deployment_logs(self, deployment_id: int) -> list[DeploymentLogEntry]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM deployment_logs WHERE deployment_id = ? ORDER BY id ASC",
                (deployment_id,),
            ).fetchall()
        return [
            DeploymentLogEntry(
                deployment_id=row["deployment_id"],
                phase=row["phase"],
                level=row["level"],
                message=row["message"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]

    async def get_project_stats(self, project: Project) -> ProjectStats:
        deployments = await self.list_deployments(project.id, limit=-1)
        return compute_stats(project, deployments)
