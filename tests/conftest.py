"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from buildcart.api.deps import get_deployment_orchestrator
from buildcart.core.events import EventBus
from buildcart.core.orchestrator import DeploymentOrchestrator
from buildcart.core.repository import InMemoryDeploymentRepository, InMemoryStoreRepository
from buildcart.generators.storefront.site import StorefrontRenderer
from buildcart.main import app
from buildcart.models.deployment import Deployment
from buildcart.models.identity import Identity, Role
from buildcart.models.store import Product, Store, StoreOwner, StoreSnapshot, Theme
from buildcart.services.build_writer import BuildWriter
from buildcart.services.notifier import Notifier

SUBDOMAIN_SUFFIX = ".stores.buildcart.ai"
OWNER_ID = "user-1"


class RecordingNotifier(Notifier):
    """Notifier that remembers what it was asked to send."""

    def __init__(self):
        self.sent: list[tuple[StoreSnapshot, Deployment]] = []

    async def notify_deployment_success(
        self, store: StoreSnapshot, deployment: Deployment
    ) -> None:
        self.sent.append((store, deployment))


@pytest.fixture
def owner() -> Identity:
    """The owner of the sample stores."""
    return Identity(user_id=OWNER_ID)


@pytest.fixture
def stranger() -> Identity:
    """A user who owns none of the sample stores."""
    return Identity(user_id="user-2")


@pytest.fixture
def admin() -> Identity:
    """A platform administrator."""
    return Identity(user_id="admin-1", role=Role.ADMIN)


@pytest.fixture
def make_store() -> Callable[..., Store]:
    """Factory for store records owned by OWNER_ID."""

    def _make_store(
        store_id: str = "store-acme",
        name: str = "Acme",
        slug: str = "acme",
        **overrides,
    ) -> Store:
        fields = {
            "id": store_id,
            "name": name,
            "slug": slug,
            "description": f"Everything {name} makes",
            "owner": StoreOwner(id=OWNER_ID, name="Jane Doe", email="jane@example.com"),
            "theme": Theme(primary_color="#FF5500"),
            "products": [
                Product(
                    id="prod-1",
                    name="Rocket Skates",
                    description="Fast skates",
                    price=Decimal("49.99"),
                    images=["https://cdn.example.com/skates.png"],
                    url_handle="rocket-skates",
                    updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
                ),
                Product(
                    id="prod-2",
                    name="Giant Magnet",
                    description="Very strong",
                    price=Decimal("15"),
                    url_handle="giant-magnet",
                    updated_at=datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc),
                ),
                Product(
                    id="prod-3",
                    name="Retired Anvil",
                    price=Decimal("99"),
                    is_active=False,
                ),
            ],
        }
        fields.update(overrides)
        return Store(**fields)

    return _make_store


@pytest.fixture
def acme_store(make_store) -> Store:
    """Acme with two active products and one inactive product."""
    return make_store()


@pytest.fixture
def renderer() -> StorefrontRenderer:
    return StorefrontRenderer(subdomain_suffix=SUBDOMAIN_SUFFIX)


@pytest.fixture
def build_root(tmp_path: Path) -> Path:
    return tmp_path / "builds"


@pytest.fixture
def writer(build_root: Path) -> BuildWriter:
    return BuildWriter(root=build_root)


@pytest.fixture
def deployment_repository() -> InMemoryDeploymentRepository:
    return InMemoryDeploymentRepository()


@pytest.fixture
def store_repository() -> InMemoryStoreRepository:
    return InMemoryStoreRepository()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def events() -> EventBus:
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def orchestrator(
    deployment_repository: InMemoryDeploymentRepository,
    store_repository: InMemoryStoreRepository,
    renderer: StorefrontRenderer,
    writer: BuildWriter,
    notifier: RecordingNotifier,
    events: EventBus,
) -> DeploymentOrchestrator:
    """Create an orchestrator wired to in-memory test dependencies."""
    return DeploymentOrchestrator(
        deployments=deployment_repository,
        stores=store_repository,
        renderer=renderer,
        writer=writer,
        notifier=notifier,
        events=events,
        timeout=10,
    )


@pytest.fixture
async def client(orchestrator: DeploymentOrchestrator) -> AsyncClient:
    """Create an async test client backed by the test orchestrator."""
    app.dependency_overrides[get_deployment_orchestrator] = lambda: orchestrator

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
