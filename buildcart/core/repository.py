"""Storage interfaces for deployment records and stores.

The orchestrator only talks to these abstract repositories. In-memory
implementations live here; a SQLite-backed one lives in
``buildcart.core.sqlite_repository``.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import UUID

from buildcart.core.exceptions import ConflictError
from buildcart.models.deployment import Deployment, DeploymentStatus
from buildcart.models.store import Store, StoreSnapshot, utcnow


class DeploymentRepository(ABC):
    """Persistence for deployment records."""

    @abstractmethod
    async def create(self, deployment: Deployment) -> Deployment:
        """Insert a new deployment record."""

    @abstractmethod
    async def update(self, deployment: Deployment) -> Deployment:
        """Persist changes to an existing deployment record."""

    @abstractmethod
    async def get(self, deployment_id: UUID) -> Deployment | None:
        """Fetch a deployment by ID."""

    @abstractmethod
    async def list_for_store(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Deployment]:
        """List a store's deployments, newest first."""

    @abstractmethod
    async def count(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
    ) -> int:
        """Count a store's deployments matching the filters."""

    @abstractmethod
    async def find_by_version(
        self,
        store_id: str,
        version: str,
        status: DeploymentStatus | None = None,
    ) -> Deployment | None:
        """Find a store's deployment by version label."""

    @abstractmethod
    async def delete(self, deployment_id: UUID) -> bool:
        """Delete a deployment record. Returns False when it did not exist."""

    @abstractmethod
    async def acquire_build_slot(
        self,
        store_id: str,
        deployment_id: UUID,
        stale_before: datetime | None = None,
    ) -> bool:
        """Mark a deployment as the store's active build if none is active.

        A marker acquired before ``stale_before`` belongs to a build that
        never released it and is taken over.
        """

    @abstractmethod
    async def release_build_slot(self, store_id: str, deployment_id: UUID) -> None:
        """Clear the store's active build marker if it belongs to deployment_id."""


class StoreRepository(ABC):
    """Store snapshot provider and store record updater."""

    @abstractmethod
    async def save_store(self, store: Store) -> Store:
        """Insert or replace a store record."""

    @abstractmethod
    async def get_store(self, store_id: str) -> Store | None:
        """Fetch a store record by ID."""

    async def get_store_snapshot(self, store_id: str) -> StoreSnapshot | None:
        """Fetch a read-only snapshot of a store."""
        store = await self.get_store(store_id)
        return store.to_snapshot() if store else None

    @abstractmethod
    async def set_deployment_state(
        self,
        store_id: str,
        is_deployed: bool,
        deployment_url: str | None,
    ) -> None:
        """Update the store's denormalized deployment fields."""

    @abstractmethod
    async def find_store_by_domain(self, domain: str) -> str | None:
        """Return the ID of the store bound to a domain."""

    @abstractmethod
    async def bind_custom_domain(self, store_id: str, domain: str) -> None:
        """Atomically bind a domain to a store.

        Raises:
            ConflictError: If another store already owns the domain
        """

    @abstractmethod
    async def set_ssl_enabled(self, domain: str, enabled: bool) -> bool:
        """Record the SSL flag of a domain. Returns the previous value."""

    @abstractmethod
    async def is_ssl_enabled(self, domain: str) -> bool:
        """Check whether SSL has been requested for a domain."""

    @abstractmethod
    async def set_certificate_requested(self, domain: str) -> None:
        """Record that the certificate authority accepted a request for domain."""

    @abstractmethod
    async def is_certificate_requested(self, domain: str) -> bool:
        """Check whether a certificate request for domain was accepted."""


class InMemoryDeploymentRepository(DeploymentRepository):
    """Keeps deployment records in process memory.

    Note: For production, configure ``database_path`` to use SQLite.
    """

    def __init__(self):
        self._deployments: dict[UUID, Deployment] = {}
        self._active_builds: dict[str, tuple[UUID, datetime]] = {}

    async def create(self, deployment: Deployment) -> Deployment:
        self._deployments[deployment.id] = deployment.model_copy(deep=True)
        return deployment

    async def update(self, deployment: Deployment) -> Deployment:
        self._deployments[deployment.id] = deployment.model_copy(deep=True)
        return deployment

    async def get(self, deployment_id: UUID) -> Deployment | None:
        deployment = self._deployments.get(deployment_id)
        return deployment.model_copy(deep=True) if deployment else None

    def _matching(
        self,
        store_id: str,
        status: DeploymentStatus | None,
        created_after: datetime | None,
        created_before: datetime | None,
    ) -> list[Deployment]:
        deployments = [d for d in self._deployments.values() if d.store_id == store_id]

        if status:
            deployments = [d for d in deployments if d.status == status]
        if created_after:
            deployments = [d for d in deployments if d.created_at >= created_after]
        if created_before:
            deployments = [d for d in deployments if d.created_at <= created_before]

        # Version labels increase monotonically, so they break timestamp ties
        deployments.sort(key=lambda d: (d.created_at, d.version), reverse=True)
        return deployments

    async def list_for_store(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Deployment]:
        deployments = self._matching(store_id, status, created_after, created_before)
        end = None if limit is None else offset + limit
        return [d.model_copy(deep=True) for d in deployments[offset:end]]

    async def count(
        self,
        store_id: str,
        status: DeploymentStatus | None = None,
        created_after: datetime | None = None,
        created_before: datetime | None = None,
    ) -> int:
        return len(self._matching(store_id, status, created_after, created_before))

    async def find_by_version(
        self,
        store_id: str,
        version: str,
        status: DeploymentStatus | None = None,
    ) -> Deployment | None:
        for deployment in self._matching(store_id, status, None, None):
            if deployment.version == version:
                return deployment.model_copy(deep=True)
        return None

    async def delete(self, deployment_id: UUID) -> bool:
        if deployment_id in self._deployments:
            del self._deployments[deployment_id]
            return True
        return False

    async def acquire_build_slot(
        self,
        store_id: str,
        deployment_id: UUID,
        stale_before: datetime | None = None,
    ) -> bool:
        # No await between check and set, so this is atomic on the event loop
        held = self._active_builds.get(store_id)
        if held is not None and (stale_before is None or held[1] >= stale_before):
            return False
        self._active_builds[store_id] = (deployment_id, utcnow())
        return True

    async def release_build_slot(self, store_id: str, deployment_id: UUID) -> None:
        held = self._active_builds.get(store_id)
        if held is not None and held[0] == deployment_id:
            del self._active_builds[store_id]


class InMemoryStoreRepository(StoreRepository):
    """Keeps store records and domain bindings in process memory."""

    def __init__(self):
        self._stores: dict[str, Store] = {}
        self._ssl_domains: dict[str, bool] = {}
        self._certificates_requested: set[str] = set()
        self._domain_lock = asyncio.Lock()

    async def save_store(self, store: Store) -> Store:
        async with self._domain_lock:
            if store.custom_domain:
                owner = self._owner_of(store.custom_domain)
                if owner and owner != store.id:
                    raise ConflictError(
                        "Domain is already in use",
                        {"domain": store.custom_domain},
                    )
            self._stores[store.id] = store.model_copy(deep=True)
        return store

    async def get_store(self, store_id: str) -> Store | None:
        store = self._stores.get(store_id)
        return store.model_copy(deep=True) if store else None

    async def set_deployment_state(
        self,
        store_id: str,
        is_deployed: bool,
        deployment_url: str | None,
    ) -> None:
        store = self._stores.get(store_id)
        if store is None:
            return
        store.is_deployed = is_deployed
        store.deployment_url = deployment_url
        store.updated_at = utcnow()

    def _owner_of(self, domain: str) -> str | None:
        for store in self._stores.values():
            if store.custom_domain == domain:
                return store.id
        return None

    async def find_store_by_domain(self, domain: str) -> str | None:
        return self._owner_of(domain)

    async def bind_custom_domain(self, store_id: str, domain: str) -> None:
        async with self._domain_lock:
            owner = self._owner_of(domain)
            if owner and owner != store_id:
                raise ConflictError("Domain is already in use", {"domain": domain})

            store = self._stores.get(store_id)
            if store is None:
                return
            store.custom_domain = domain
            store.updated_at = utcnow()

    async def set_ssl_enabled(self, domain: str, enabled: bool) -> bool:
        previous = self._ssl_domains.get(domain, False)
        self._ssl_domains[domain] = enabled
        return previous

    async def is_ssl_enabled(self, domain: str) -> bool:
        return self._ssl_domains.get(domain, False)

    async def set_certificate_requested(self, domain: str) -> None:
        self._certificates_requested.add(domain)

    async def is_certificate_requested(self, domain: str) -> bool:
        return domain in self._certificates_requested
