"""Deployment Orchestrator.

Coordinates a store deployment end to end: record creation, rendering,
writing the versioned build, finalizing the record, notifying the owner and,
when requested, binding a custom domain. Also owns the read, rollback and
delete operations on deployment records.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from structlog.contextvars import bound_contextvars

from buildcart.config import settings
from buildcart.core.events import EventBus, get_event_bus
from buildcart.core.exceptions import (
    AuthorizationError,
    BuildcartError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from buildcart.core.repository import (
    DeploymentRepository,
    InMemoryDeploymentRepository,
    InMemoryStoreRepository,
    StoreRepository,
)
from buildcart.generators.storefront.site import StorefrontRenderer
from buildcart.models.deployment import (
    DateRange,
    DeployResult,
    Deployment,
    DeploymentAnalytics,
    DeploymentConfig,
    DeploymentEnvironment,
    DeploymentLogs,
    DeploymentPage,
    DeploymentStatistics,
    DeploymentStatus,
    DomainBinding,
    Pagination,
    SSLStatus,
)
from buildcart.models.identity import Identity
from buildcart.models.store import Store, StoreSnapshot, StoreSummary, utcnow
from buildcart.services.build_writer import BuildWriter
from buildcart.services.domain_manager import DomainManager
from buildcart.services.notifier import EmailNotifier, Notifier
from buildcart.utils.logging import get_logger
from buildcart.utils.validators import validate_domain

MAX_PAGE_SIZE = 100
RECENT_DEPLOYMENTS_LIMIT = 5

# Grace period past the deploy timeout before an unreleased build slot is stale
STALE_BUILD_MARGIN_SECONDS = 60

INTERRUPTED_MESSAGE = "Deployment interrupted before completion"

_last_version_ms = 0


def next_version() -> str:
    """Return a ``v<epoch-ms>`` label, strictly increasing within the process."""
    global _last_version_ms
    now_ms = time.time_ns() // 1_000_000
    _last_version_ms = max(now_ms, _last_version_ms + 1)
    return f"v{_last_version_ms}"


@dataclass
class BuildOutput:
    """What the render and write steps produced."""

    file_count: int
    build_path: str
    url: str


class DeploymentOrchestrator:
    """Runs deployments and answers questions about them.

    Deployment lifecycle:
    1. pending - record created, per-store build slot held
    2. building - snapshot rendered and written under ``<slug>/<version>``
    3. success | failed - terminal, record never changes again

    Every operation takes the caller identity first and requires it to be
    the store owner or an administrator.
    """

    def __init__(
        self,
        deployments: DeploymentRepository,
        stores: StoreRepository,
        renderer: StorefrontRenderer | None = None,
        writer: BuildWriter | None = None,
        domains: DomainManager | None = None,
        notifier: Notifier | None = None,
        events: EventBus | None = None,
        timeout: float | None = None,
    ):
        self.deployments = deployments
        self.stores = stores
        self.renderer = renderer or StorefrontRenderer()
        self.writer = writer or BuildWriter()
        self.domains = domains or DomainManager(stores)
        self.notifier = notifier or EmailNotifier()
        self.events = events or get_event_bus()
        self.timeout = timeout if timeout is not None else settings.deploy_timeout_seconds
        self.logger = get_logger("orchestrator")

    async def deploy(
        self,
        identity: Identity,
        store_id: str,
        environment: DeploymentEnvironment | str = DeploymentEnvironment.PRODUCTION,
        custom_domain: str | None = None,
        ssl_enabled: bool = True,
    ) -> DeployResult:
        """Deploy a store.

        Failures during snapshot fetch, render or write do not raise; they
        produce a FAILED deployment in the result. Domain and SSL failures
        are reported as warnings and never affect the deployment.

        Raises:
            NotFoundError: If the store does not exist
            AuthorizationError: If the caller may not deploy this store
            ValidationError: If the environment is unknown
            ConflictError: If the store already has a deployment building
        """
        await self.authorize_store(identity, store_id)
        try:
            environment = DeploymentEnvironment(environment)
        except ValueError:
            raise ValidationError(
                f"Invalid environment: {environment}",
                {"allowed": [e.value for e in DeploymentEnvironment]},
            ) from None

        deployment = Deployment(
            store_id=store_id, version=next_version(), environment=environment
        )
        acquired = await self.deployments.acquire_build_slot(
            store_id, deployment.id, stale_before=self._stale_cutoff()
        )
        if not acquired:
            raise ConflictError(
                "A deployment is already in progress for this store",
                {"store_id": store_id},
            )

        with bound_contextvars(
            store_id=store_id,
            deployment_id=str(deployment.id),
            version=deployment.version,
        ):
            try:
                await self._fail_interrupted(store_id)
                deployment, build, snapshot = await self._run_deployment(deployment)
            finally:
                await self.deployments.release_build_slot(store_id, deployment.id)

            result = DeployResult(
                deployment=deployment,
                url=deployment.url,
                build_path=deployment.build_path,
            )
            if build is None:
                if custom_domain:
                    result.warnings.append(
                        "Custom domain setup skipped because the deployment failed"
                    )
                return result

            await self._notify(snapshot, deployment)

            if custom_domain:
                await self._setup_domain_for_deploy(
                    result, store_id, custom_domain, ssl_enabled
                )

            return result

    def _stale_cutoff(self) -> datetime:
        """Builds started before this moment can no longer be running."""
        return utcnow() - timedelta(seconds=self.timeout + STALE_BUILD_MARGIN_SECONDS)

    async def _fail_interrupted(self, store_id: str) -> None:
        """Close records left in flight by a deploy that died holding the slot.

        Only the build slot holder calls this, so no other deploy of the
        store can own a non-terminal record.
        """
        for status in (DeploymentStatus.PENDING, DeploymentStatus.BUILDING):
            for orphan in await self.deployments.list_for_store(store_id, status=status):
                line = f"[{utcnow().isoformat(timespec='seconds')}] {INTERRUPTED_MESSAGE}"
                orphan.mark_failed(
                    f"{orphan.build_logs}\n{line}" if orphan.build_logs else line
                )
                await self.deployments.update(orphan)
                await self.events.publish_deployment_failed(orphan, INTERRUPTED_MESSAGE)
                self.logger.warning(
                    "orchestrator.deploy.interrupted",
                    interrupted_deployment_id=str(orphan.id),
                    interrupted_version=orphan.version,
                )

    async def _run_deployment(
        self, deployment: Deployment
    ) -> tuple[Deployment, BuildOutput | None, StoreSnapshot | None]:
        """Drive one deployment record to a terminal state."""
        log_lines: list[str] = []

        def log(message: str) -> None:
            log_lines.append(f"[{utcnow().isoformat(timespec='seconds')}] {message}")

        await self.deployments.create(deployment)
        deployment.mark_building()
        await self.deployments.update(deployment)
        await self.events.publish_deployment_started(deployment)

        self.logger.info(
            "orchestrator.deploy.started",
            environment=deployment.environment.value,
        )
        log(
            f"Deployment {deployment.version} started "
            f"({deployment.environment.value})"
        )

        snapshot = None
        # Stops the worker thread from writing once the deploy has timed out
        cancelled = threading.Event()
        try:
            snapshot = await self.stores.get_store_snapshot(deployment.store_id)
            if snapshot is None:
                raise NotFoundError("Store", deployment.store_id)
            log(f"Loaded store '{snapshot.slug}' with {len(snapshot.products)} active products")

            build = await asyncio.wait_for(
                asyncio.to_thread(self._build, snapshot, deployment.version, cancelled),
                timeout=self.timeout,
            )
            log(f"Rendered {build.file_count} files")
            log(f"Wrote build to {build.build_path}")

            self.writer.activate(snapshot.slug, deployment.version)
            log(f"Activated version {deployment.version}")
        except asyncio.TimeoutError:
            cancelled.set()
            failure = f"Deployment timed out after {self.timeout:g} seconds"
        except BuildcartError as e:
            failure = e.message
        except Exception as e:
            self.logger.error(
                "orchestrator.deploy.unexpected_error",
                error=str(e),
                exc_info=True,
            )
            failure = f"Unexpected error: {e}"
        else:
            failure = None

        if failure is not None:
            await self._fail(deployment, log_lines, failure)
            return deployment, None, snapshot

        log("Build completed successfully")
        deployment.mark_succeeded(
            url=build.url, build_path=build.build_path, logs="\n".join(log_lines)
        )
        await self.deployments.update(deployment)
        await self.stores.set_deployment_state(
            deployment.store_id, is_deployed=True, deployment_url=build.url
        )
        await self.events.publish_deployment_completed(deployment)

        self.logger.info(
            "orchestrator.deploy.completed",
            url=build.url,
            duration_seconds=deployment.duration_seconds,
        )
        return deployment, build, snapshot

    def _build(
        self, snapshot: StoreSnapshot, version: str, cancelled: threading.Event
    ) -> BuildOutput:
        """Render the snapshot and write it under its versioned namespace."""
        files = self.renderer.render(snapshot)
        root = self.writer.write_tree(
            f"{snapshot.slug}/{version}", files, cancelled=cancelled
        )
        return BuildOutput(
            file_count=len(files),
            build_path=str(root),
            url=self.renderer.store_url(snapshot),
        )

    async def _fail(
        self, deployment: Deployment, log_lines: list[str], reason: str
    ) -> Deployment:
        log_lines.append(
            f"[{utcnow().isoformat(timespec='seconds')}] Deployment failed: {reason}"
        )
        deployment.mark_failed("\n".join(log_lines))
        await self.deployments.update(deployment)
        await self.events.publish_deployment_failed(deployment, reason)

        self.logger.warning("orchestrator.deploy.failed", reason=reason)
        return deployment

    async def _notify(self, snapshot: StoreSnapshot, deployment: Deployment) -> None:
        try:
            await self.notifier.notify_deployment_success(snapshot, deployment)
        except Exception as e:
            self.logger.error("orchestrator.notification_failed", error=str(e))

    async def _setup_domain_for_deploy(
        self,
        result: DeployResult,
        store_id: str,
        domain: str,
        ssl_enabled: bool,
    ) -> None:
        try:
            result.domain = await self.domains.setup_custom_domain(store_id, domain)
        except BuildcartError as e:
            self.logger.warning(
                "orchestrator.domain_setup_failed", domain=domain, error=e.message
            )
            result.warnings.append(f"Custom domain setup failed: {e.message}")
            return

        if not ssl_enabled:
            return

        try:
            result.ssl = await self.domains.enable_ssl(result.domain.domain)
        except BuildcartError as e:
            self.logger.warning(
                "orchestrator.ssl_setup_failed", domain=domain, error=e.message
            )
            result.warnings.append(f"SSL setup failed: {e.message}")

    async def get_deployment_status(
        self, identity: Identity, deployment_id: UUID
    ) -> Deployment:
        """Get a deployment record."""
        deployment = await self._get_deployment(deployment_id)
        await self.authorize_store(identity, deployment.store_id)
        return deployment

    async def get_deployment_logs(
        self, identity: Identity, deployment_id: UUID
    ) -> DeploymentLogs:
        """Get the build logs of a deployment."""
        deployment = await self.get_deployment_status(identity, deployment_id)
        return DeploymentLogs(
            logs=deployment.build_logs,
            status=deployment.status,
            deployed_at=deployment.deployed_at,
        )

    async def get_store_deployments(
        self,
        identity: Identity,
        store_id: str,
        page: int = 1,
        limit: int = 10,
        status: DeploymentStatus | None = None,
    ) -> DeploymentPage:
        """List a store's deployments newest first.

        Args:
            identity: The caller
            store_id: Store to list
            page: 1-based page number
            limit: Page size, capped at MAX_PAGE_SIZE
            status: Only include deployments in this status
        """
        if page < 1:
            raise ValidationError("Page must be a positive integer")
        if limit < 1:
            raise ValidationError("Limit must be a positive integer")
        limit = min(limit, MAX_PAGE_SIZE)

        await self.authorize_store(identity, store_id)

        total = await self.deployments.count(store_id, status=status)
        deployments = await self.deployments.list_for_store(
            store_id,
            status=status,
            offset=(page - 1) * limit,
            limit=limit,
        )
        return DeploymentPage(
            deployments=deployments,
            pagination=Pagination.build(page, limit, total),
        )

    async def rollback_deployment(
        self, identity: Identity, store_id: str, version: str
    ) -> Deployment:
        """Make a previous successful build live again without rebuilding.

        Raises:
            NotFoundError: If no successful deployment has this version, or
                its build is no longer on storage
        """
        store = await self.authorize_store(identity, store_id)

        target = await self.deployments.find_by_version(
            store_id, version, status=DeploymentStatus.SUCCESS
        )
        if target is None:
            raise NotFoundError("Deployment", version)

        if not self.writer.build_exists(store.slug, version):
            self.logger.warning(
                "orchestrator.rollback.build_missing",
                store_id=store_id,
                version=version,
            )
            raise NotFoundError("Build", version)

        self.writer.activate(store.slug, version)
        await self.stores.set_deployment_state(
            store_id, is_deployed=True, deployment_url=target.url
        )

        self.logger.info(
            "orchestrator.rollback.completed",
            store_id=store_id,
            version=version,
            url=target.url,
        )
        return target

    async def setup_custom_domain(
        self, identity: Identity, store_id: str, domain: str
    ) -> DomainBinding:
        """Bind a custom domain to a store."""
        await self.authorize_store(identity, store_id)
        return await self.domains.setup_custom_domain(store_id, domain)

    async def enable_ssl(
        self, identity: Identity, domain: str, store_id: str | None = None
    ) -> SSLStatus:
        """Request SSL for a domain bound to one of the caller's stores.

        When store_id is given the domain must be bound to that store.
        """
        domain = validate_domain(domain)
        owner_id = await self.stores.find_store_by_domain(domain)
        if owner_id is None or (store_id is not None and owner_id != store_id):
            raise NotFoundError("Domain", domain)
        await self.authorize_store(identity, owner_id)
        return await self.domains.enable_ssl(domain)

    async def get_deployment_analytics(
        self,
        identity: Identity,
        store_id: str,
        date_range: DateRange | None = None,
    ) -> DeploymentAnalytics:
        """Aggregate a store's deployments within an optional date range."""
        await self.authorize_store(identity, store_id)

        date_range = date_range or DateRange()
        window = {
            "created_after": date_range.start,
            "created_before": date_range.end,
        }

        total = await self.deployments.count(store_id, **window)
        failed = await self.deployments.count(
            store_id, status=DeploymentStatus.FAILED, **window
        )
        successful = await self.deployments.list_for_store(
            store_id, status=DeploymentStatus.SUCCESS, **window
        )

        durations = [
            d.duration_seconds for d in successful if d.duration_seconds is not None
        ]
        statistics = DeploymentStatistics(
            total_deployments=total,
            successful_deployments=len(successful),
            failed_deployments=failed,
            success_rate=round(len(successful) / total * 100, 2) if total else 0.0,
            average_build_time=round(sum(durations) / len(durations), 3)
            if durations
            else 0.0,
        )

        recent = await self.deployments.list_for_store(
            store_id, limit=RECENT_DEPLOYMENTS_LIMIT
        )
        return DeploymentAnalytics(statistics=statistics, recent_deployments=recent)

    async def delete_deployment(self, identity: Identity, deployment_id: UUID) -> None:
        """Delete a deployment record. Its build stays on storage.

        An unfinished record older than the deploy timeout plus a grace
        period belongs to a deploy that died; it is deleted and its build
        slot freed.

        Raises:
            ConflictError: If the deployment may still be running
        """
        deployment = await self._get_deployment(deployment_id)
        await self.authorize_store(identity, deployment.store_id)

        if not deployment.is_terminal:
            if deployment.created_at >= self._stale_cutoff():
                raise ConflictError(
                    "Cannot delete a deployment that is still in progress",
                    {"deployment_id": str(deployment_id)},
                )
            await self.deployments.release_build_slot(deployment.store_id, deployment_id)

        await self.deployments.delete(deployment_id)
        self.logger.info(
            "orchestrator.deployment_deleted",
            store_id=deployment.store_id,
            deployment_id=str(deployment_id),
        )

    async def get_deployment_config(
        self, identity: Identity, store_id: str
    ) -> DeploymentConfig:
        """Current deployment configuration of a store."""
        store = await self.authorize_store(identity, store_id)

        latest = await self.deployments.list_for_store(store_id, limit=1)
        latest_deployment = latest[0] if latest else None

        return DeploymentConfig(
            store=StoreSummary.from_store(store),
            latest_deployment=latest_deployment,
            deployment_url=store.deployment_url
            or (latest_deployment.url if latest_deployment else None),
        )

    async def _get_deployment(self, deployment_id: UUID) -> Deployment:
        deployment = await self.deployments.get(deployment_id)
        if deployment is None:
            raise NotFoundError("Deployment", str(deployment_id))
        return deployment

    async def authorize_store(self, identity: Identity, store_id: str) -> Store:
        """Fetch a store the caller owns, or any store for administrators."""
        store = await self.stores.get_store(store_id)
        if store is None:
            raise NotFoundError("Store", store_id)

        if not identity.can_access(store.owner.id):
            self.logger.warning(
                "orchestrator.access_denied",
                user_id=identity.user_id,
                store_id=store_id,
            )
            raise AuthorizationError()
        return store


# Singleton instance
_orchestrator: DeploymentOrchestrator | None = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Get the orchestrator singleton.

    Uses SQLite when ``database_path`` is configured, otherwise in-memory
    repositories.
    """
    global _orchestrator
    if _orchestrator is None:
        if settings.database_path:
            from buildcart.core.sqlite_repository import SQLiteRepository

            repository = SQLiteRepository(settings.database_path)
            _orchestrator = DeploymentOrchestrator(
                deployments=repository, stores=repository
            )
        else:
            _orchestrator = DeploymentOrchestrator(
                deployments=InMemoryDeploymentRepository(),
                stores=InMemoryStoreRepository(),
            )
    return _orchestrator
