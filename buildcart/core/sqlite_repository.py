"""SQLite repository for stores and deployment records.

Uniqueness of domain bindings and the per-store active-build marker are
enforced by table constraints, so concurrent writers fail atomically.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import UUID

from buildcart.core.exceptions import ConflictError
from buildcart.core.repository import DeploymentRepository, StoreRepository
from buildcart.models.deployment import (
    Deployment,
    DeploymentEnvironment,
    DeploymentStatus,
)
from buildcart.models.store import Store, utcnow
from buildcart.utils.logging import get_logger

logger = get_logger("sqlite_repository")


def _to_db_time(value: datetime) -> str:
    """Serialize a datetime as a sortable UTC ISO string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


class SQLiteRepository(DeploymentRepository, StoreRepository):
    """Durable store and deployment persistence in a single SQLite file."""

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._ensure_db_exists()

    def _ensure_db_exists(self) -> None:
        """Create database and tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stores (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    custom_domain TEXT UNIQUE,
                    is_deployed INTEGER NOT NULL DEFAULT 0,
                    deployment_url TEXT,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deployments (
                    id TEXT PRIMARY KEY,
                    store_id TEXT NOT NULL,
                    version TEXT NOT NULL,
                    status TEXT NOT NULL,
                    environment TEXT NOT NULL,
                    url TEXT,
                    build_path TEXT,
                    build_logs TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    deployed_at TEXT,
                    UNIQUE (store_id, version)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_deployments_store_created
                ON deployments(store_id, created_at DESC)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS active_builds (
                    store_id TEXT PRIMARY KEY,
                    deployment_id TEXT NOT NULL,
                    acquired_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ssl_domains (
                    domain TEXT PRIMARY KEY,
                    enabled INTEGER NOT NULL,
                    certificate_requested INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

        logger.debug("sqlite_repository.initialized", db_path=str(self.db_path))

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # Deployments

    def _row_to_deployment(self, row: sqlite3.Row) -> Deployment:
        """Convert a database row to a Deployment."""
        return Deployment(
            id=UUID(row["id"]),
            store_id=row["store_id"],
            version=row["version"],
            status=DeploymentStatus(row["status"]),
            environment=DeploymentEnvironment(row["environment"]),
            url=row["url"],
            build_path=row["build_path"],
            build_logs=row["build_logs"],
            created_at=datetime.fromisoformat(row["created_at"]),
            deployed_at=(
                datetime.fromisoformat(row["deployed_at"]) if row["deployed_at"] else None
            ),
        )

    def _deployment_filters(
        self,
        store_id: str,
        status: DeploymentStatus | None,
        created_after: datetime | None,
        created_before: datetime | None,
    ) -> tuple[str, list[Any]]:
        clauses = ["store_id = ?"]
        params: list[Any] = [store_id]
        if status:
            clauses.append("status = ?")
            params.append(status.value)
        if created_after:
            clauses.append("created_at >= ?")
            params.append(_to_db_time(created_after))
        if created_before:
            clauses.append("created_at <= ?")
            params.append(_to_db_time(created_before))
        return " AND ".join(clauses), params

    async def create(self, deployment: Deployment) -> Deployment:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO deployments
                (id, store_id, version, status, environment, url, build_path,
                 build_logs, created_at, deployed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(deployment.id),
                    deployment.store_id,
                    deployment.version,
                    deployment.status.value,
                    deployment.environment.value,
                    deployment.url,
                    deployment.build_path,
                    deployment.build_logs,
                    _to_db_time(deployment.created_at),
                    _to_db_time(deployment.deployed_at) if deployment.deployed_at else None,
                ),
            )
            conn.commit()
        return deployment

    async def update(self, deployment: Deployment) -> Deployment:
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE deployments
                SET status = ?, url = ?, build_path = ?, build_logs = ?, deployed_at = ?
                WHERE id = ?
                """,
                (
                    deployment.status.value,
                    deployment.url,
                    deployment.build_path,
                    deployment.build_logs,
                    _to_db_time(deployment.deployed_at) if deployment.deployed_at else None,
                    str(deployment.id),
                ),
            )
            conn.commit()
        return deployment

    async def get(self, deployment_id: UUID) -> Deployment | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM deployments WHERE id = ?",
                (str(deployment_id),),
            ).fetchone()

        return self._row_to_deployment(row) if row else None

    async def list_for_store(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Deployment]:
        where, params = self._deployment_filters(
            store_id, status, created_after, created_before
        )
        query = (
            f"SELECT * FROM deployments WHERE {where} "
            "ORDER BY created_at DESC, version DESC LIMIT ? OFFSET ?"
        )
        params.extend([-1 if limit is None else limit, offset])

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_deployment(row) for row in rows]

    async def count(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
    ) -> int:
        where, params = self._deployment_filters(
            store_id, status, created_after, created_before
        )
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS total FROM deployments WHERE {where}", params
            ).fetchone()
        return row["total"]

    async def find_by_version(
        self,
        store_id: str,
        version: str,
        status: DeploymentStatus | None = None,
    ) -> Deployment | None:
        where, params = self._deployment_filters(store_id, status, None, None)
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT * FROM deployments WHERE {where} AND version = ?",
                [*params, version],
            ).fetchone()

        return self._row_to_deployment(row) if row else None

    async def delete(self, deployment_id: UUID) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM deployments WHERE id = ?",
                (str(deployment_id),),
            )
            conn.commit()
        return cursor.rowcount > 0

    async def acquire_build_slot(
        self,
        store_id: str,
        deployment_id: UUID,
        stale_before: datetime | None = None,
    ) -> bool:
        taken_over = 0
        try:
            with self._get_connection() as conn:
                # Stale removal and insert commit together or not at all
                if stale_before is not None:
                    taken_over = conn.execute(
                        "DELETE FROM active_builds WHERE store_id = ? AND acquired_at < ?",
                        (store_id, _to_db_time(stale_before)),
                    ).rowcount
                conn.execute(
                    "INSERT INTO active_builds (store_id, deployment_id, acquired_at) "
                    "VALUES (?, ?, ?)",
                    (store_id, str(deployment_id), _to_db_time(utcnow())),
                )
                conn.commit()
        except sqlite3.IntegrityError:
            return False

        if taken_over:
            logger.warning("sqlite_repository.stale_build_slot_taken_over", store_id=store_id)
        return True

    async def release_build_slot(self, store_id: str, deployment_id: UUID) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM active_builds WHERE store_id = ? AND deployment_id = ?",
                (store_id, str(deployment_id)),
            )
            conn.commit()

    # Stores

    def _row_to_store(self, row: sqlite3.Row) -> Store:
        """Convert a database row to a Store."""
        store = Store.model_validate_json(row["data"])
        store.custom_domain = row["custom_domain"]
        store.is_deployed = bool(row["is_deployed"])
        store.deployment_url = row["deployment_url"]
        return store

    async def save_store(self, store: Store) -> Store:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO stores
                    (id, data, custom_domain, is_deployed, deployment_url, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        data = excluded.data,
                        custom_domain = excluded.custom_domain,
                        is_deployed = excluded.is_deployed,
                        deployment_url = excluded.deployment_url,
                        updated_at = excluded.updated_at
                    """,
                    (
                        store.id,
                        store.model_dump_json(),
                        store.custom_domain,
                        int(store.is_deployed),
                        store.deployment_url,
                        _to_db_time(utcnow()),
                    ),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                "Domain is already in use", {"domain": store.custom_domain}
            ) from e
        return store

    async def get_store(self, store_id: str) -> Store | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM stores WHERE id = ?",
                (store_id,),
            ).fetchone()

        return self._row_to_store(row) if row else None

    async def set_deployment_state(
        self,
        store_id: str,
        is_deployed: bool,
        deployment_url: str | None,
    ) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE stores SET is_deployed = ?, deployment_url = ?, updated_at = ? "
                "WHERE id = ?",
                (int(is_deployed), deployment_url, _to_db_time(utcnow()), store_id),
            )
            conn.commit()

    async def find_store_by_domain(self, domain: str) -> str | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT id FROM stores WHERE custom_domain = ?",
                (domain,),
            ).fetchone()
        return row["id"] if row else None

    async def bind_custom_domain(self, store_id: str, domain: str) -> None:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    "UPDATE stores SET custom_domain = ?, updated_at = ? WHERE id = ?",
                    (domain, _to_db_time(utcnow()), store_id),
                )
                conn.commit()
        except sqlite3.IntegrityError as e:
            raise ConflictError("Domain is already in use", {"domain": domain}) from e

        logger.info("sqlite_repository.domain_bound", store_id=store_id, domain=domain)

    async def set_ssl_enabled(self, domain: str, enabled: bool) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT enabled FROM ssl_domains WHERE domain = ?",
                (domain,),
            ).fetchone()
            conn.execute(
                """
                INSERT INTO ssl_domains (domain, enabled, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(domain) DO UPDATE SET
                    enabled = excluded.enabled,
                    updated_at = excluded.updated_at
                """,
                (domain, int(enabled), _to_db_time(utcnow())),
            )
            conn.commit()
        return bool(row["enabled"]) if row else False

    async def is_ssl_enabled(self, domain: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT enabled FROM ssl_domains WHERE domain = ?",
                (domain,),
            ).fetchone()
        return bool(row["enabled"]) if row else False

    async def set_certificate_requested(self, domain: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO ssl_domains (domain, enabled, certificate_requested, updated_at)
                VALUES (?, 1, 1, ?)
                ON CONFLICT(domain) DO UPDATE SET
                    certificate_requested = 1,
                    updated_at = excluded.updated_at
                """,
                (domain, _to_db_time(utcnow())),
            )
            conn.commit()

    async def is_certificate_requested(self, domain: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT certificate_requested FROM ssl_domains WHERE domain = ?",
                (domain,),
            ).fetchone()
        return bool(row["certificate_requested"]) if row else False
