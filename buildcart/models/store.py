"""Store-related data models."""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Theme(BaseModel):
    """Visual theme of a store.

    Every field is optional; the renderer applies its own defaults.
    """

    primary_color: str | None = None
    secondary_color: str | None = None
    layout: str | None = None
    heading_font: str | None = None
    body_font: str | None = None


class Product(BaseModel):
    """A product as it appears in a store snapshot."""

    id: str
    name: str
    description: str = ""
    short_description: str | None = None
    meta_description: str | None = None
    price: Decimal = Field(..., ge=0)
    images: list[str] = Field(default_factory=list)
    url_handle: str | None = None
    is_active: bool = True
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def page_name(self) -> str:
        """File stem of the product's page."""
        return self.url_handle or self.id


class StoreOwner(BaseModel):
    """The user who owns a store."""

    id: str
    name: str = ""
    email: str = ""


class StoreSnapshot(BaseModel):
    """Read-only view of a store at deploy time."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    slug: str
    description: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    theme: Theme = Field(default_factory=Theme)
    products: list[Product] = Field(default_factory=list)
    custom_domain: str | None = None
    owner: StoreOwner


class Store(BaseModel):
    """Complete store record, including denormalized deployment state."""

    id: str
    name: str
    slug: str = Field(..., min_length=1, max_length=63, pattern=r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?$")
    description: str | None = None
    meta_title: str | None = None
    meta_description: str | None = None
    theme: Theme = Field(default_factory=Theme)
    products: list[Product] = Field(default_factory=list)
    owner: StoreOwner

    custom_domain: str | None = None
    is_deployed: bool = False
    deployment_url: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def active_products(self) -> list[Product]:
        """Products that are published on the storefront."""
        return [p for p in self.products if p.is_active]

    def to_snapshot(self) -> StoreSnapshot:
        """Freeze the store into a snapshot with only active products."""
        return StoreSnapshot(
            id=self.id,
            name=self.name,
            slug=self.slug,
            description=self.description,
            meta_title=self.meta_title,
            meta_description=self.meta_description,
            theme=self.theme.model_copy(),
            products=[p.model_copy() for p in self.active_products],
            custom_domain=self.custom_domain,
            owner=self.owner.model_copy(),
        )


class StoreSummary(BaseModel):
    """Deployment-relevant fields of a store."""

    id: str
    name: str
    slug: str
    custom_domain: str | None = None
    deployment_url: str | None = None
    is_deployed: bool = False

    @classmethod
    def from_store(cls, store: Store) -> "StoreSummary":
        """Create a summary from a store record."""
        return cls(
            id=store.id,
            name=store.name,
            slug=store.slug,
            custom_domain=store.custom_domain,
            deployment_url=store.deployment_url,
            is_deployed=store.is_deployed,
        )
