"""Static storefront generator.

Renders a store snapshot into the documents of a deployable static site:
pages, stylesheet, cart script, sitemap and robots policy. Rendering is
pure; nothing here touches the filesystem beyond reading templates.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from buildcart.config import settings
from buildcart.core.exceptions import RenderError
from buildcart.models.store import Product, StoreSnapshot
from buildcart.utils.validators import (
    FONT_NAME_REGEX,
    HEX_COLOR_REGEX,
    is_safe_page_name,
    is_valid_domain,
)

TEMPLATES_DIR = Path(__file__).parent / "templates"

DEFAULT_PRIMARY_COLOR = "#3B82F6"
DEFAULT_SECONDARY_COLOR = "#1F2937"
DEFAULT_FONT = "Inter"
DEFAULT_LAYOUT = "grid"
LAYOUTS = ("grid", "list")
DEFAULT_TAGLINE = "Discover amazing products at great prices."
DEFAULT_ABOUT = (
    "We are dedicated to providing quality products and excellent service "
    "to our customers."
)
PLACEHOLDER_IMAGE = "/assets/placeholder.svg"
FEATURED_PRODUCT_LIMIT = 6

# Output path -> template name, for pages rendered once per store
STATIC_PAGES = {
    "index.html": "index.html",
    "products.html": "products.html",
    "cart.html": "cart.html",
    "checkout.html": "checkout.html",
    "contact.html": "contact.html",
    "about.html": "about.html",
}


@dataclass(frozen=True)
class ProductView:
    """Template context for one product."""

    id: str
    name: str
    description: str
    summary: str
    meta_description: str
    price: str
    images: tuple[str, ...]
    page_name: str

    @property
    def image(self) -> str:
        return self.images[0]


@dataclass(frozen=True)
class StoreView:
    """Template context for store-wide values with defaults applied."""

    name: str
    tagline: str
    about: str
    meta_title: str
    meta_description: str
    base_url: str
    primary_color: str
    secondary_color: str
    heading_font: str
    body_font: str
    layout: str


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    lastmod: str
    changefreq: str
    priority: str


def _w3c_datetime(value: datetime) -> str:
    """Format a timestamp for a sitemap lastmod element."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _color(value: str | None, default: str) -> str:
    return value if value and HEX_COLOR_REGEX.match(value) else default


def _font(value: str | None) -> str:
    return value if value and FONT_NAME_REGEX.match(value) else DEFAULT_FONT


def _image(url: str) -> str | None:
    """Accept absolute http(s) URLs and site-relative paths only."""
    if url.startswith(("https://", "http://")) or (
        url.startswith("/") and not url.startswith("//")
    ):
        return url
    return None


def _price(value: Decimal) -> str:
    return f"{value:.2f}"


class StorefrontRenderer:
    """Renders store snapshots into static site documents.

    The Jinja2 environment is shared and read-only after construction, so
    one renderer can serve concurrent deployments of different stores.
    """

    def __init__(self, subdomain_suffix: str | None = None):
        self.subdomain_suffix = (
            subdomain_suffix if subdomain_suffix is not None else settings.subdomain_suffix
        )
        self._env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def store_url(self, snapshot: StoreSnapshot) -> str:
        """Public URL of a store: custom domain if bound, else its subdomain."""
        if snapshot.custom_domain:
            return f"https://{snapshot.custom_domain}"
        return f"https://{snapshot.slug}{self.subdomain_suffix}"

    def render(
        self,
        snapshot: StoreSnapshot,
        generated_at: datetime | None = None,
    ) -> dict[str, bytes]:
        """Render every document of the store's static site.

        Args:
            snapshot: Fully-resolved store snapshot
            generated_at: Timestamp for sitemap entries without their own
                modification time (defaults to now)

        Returns:
            Mapping of relative output path to file content

        Raises:
            RenderError: If the snapshot is structurally invalid
        """
        self._validate(snapshot)

        generated_at = generated_at or datetime.now(timezone.utc)
        store = self._store_view(snapshot)
        products = [self._product_view(p) for p in snapshot.products]
        context = {"store": store, "products": products}

        files: dict[str, str] = {}
        try:
            for path, template_name in STATIC_PAGES.items():
                files[path] = self._render(
                    template_name,
                    featured=products[:FEATURED_PRODUCT_LIMIT],
                    **context,
                )

            for product in products:
                files[f"product/{product.page_name}.html"] = self._render(
                    "product.html", product=product, **context
                )

            files["styles.css"] = self._render("styles.css", **context)
            files["scripts.js"] = self._render(
                "scripts.js",
                catalog={
                    p.id: {"name": p.name, "price": p.price, "url": f"/product/{p.page_name}"}
                    for p in products
                },
                **context,
            )
            files["sitemap.xml"] = self._render(
                "sitemap.xml",
                entries=self._sitemap_entries(store, snapshot.products, generated_at),
            )
            files["robots.txt"] = self._render("robots.txt", **context)
        except TemplateError as e:
            raise RenderError(f"template error: {e}") from e

        return {path: content.encode("utf-8") for path, content in files.items()}

    def _render(self, template_name: str, **context) -> str:
        return self._env.get_template(template_name).render(**context)

    def _validate(self, snapshot: StoreSnapshot) -> None:
        """Reject snapshots that cannot produce a coherent site."""
        for field in ("id", "name", "slug"):
            if not getattr(snapshot, field, None):
                raise RenderError(f"store {field} is required", field=field)

        if not is_safe_page_name(snapshot.slug):
            raise RenderError("store slug is not URL-safe", field="slug")

        if snapshot.custom_domain and not is_valid_domain(snapshot.custom_domain):
            raise RenderError("custom domain is malformed", field="custom_domain")

        seen: set[str] = set()
        for index, product in enumerate(snapshot.products):
            if not product.id:
                raise RenderError(f"product #{index} has no id", field="products.id")
            if not product.name:
                raise RenderError(f"product {product.id} has no name", field="products.name")
            if not is_safe_page_name(product.page_name):
                raise RenderError(
                    f"product {product.id} has an unsafe URL handle",
                    field="products.url_handle",
                )
            if product.page_name in seen:
                raise RenderError(
                    f"duplicate product page '{product.page_name}'",
                    field="products.url_handle",
                )
            seen.add(product.page_name)

    def _store_view(self, snapshot: StoreSnapshot) -> StoreView:
        theme = snapshot.theme
        tagline = snapshot.description or DEFAULT_TAGLINE
        return StoreView(
            name=snapshot.name,
            tagline=tagline,
            about=snapshot.description or DEFAULT_ABOUT,
            meta_title=snapshot.meta_title or snapshot.name,
            meta_description=snapshot.meta_description or tagline,
            base_url=self.store_url(snapshot),
            primary_color=_color(theme.primary_color, DEFAULT_PRIMARY_COLOR),
            secondary_color=_color(theme.secondary_color, DEFAULT_SECONDARY_COLOR),
            heading_font=_font(theme.heading_font),
            body_font=_font(theme.body_font),
            layout=theme.layout if theme.layout in LAYOUTS else DEFAULT_LAYOUT,
        )

    def _product_view(self, product: Product) -> ProductView:
        images = tuple(url for url in map(_image, product.images) if url)
        return ProductView(
            id=product.id,
            name=product.name,
            description=product.description,
            summary=product.short_description or product.description,
            meta_description=product.meta_description or product.description,
            price=_price(product.price),
            images=images or (PLACEHOLDER_IMAGE,),
            page_name=product.page_name,
        )

    def _sitemap_entries(
        self,
        store: StoreView,
        products: list[Product],
        generated_at: datetime,
    ) -> list[SitemapEntry]:
        now = _w3c_datetime(generated_at)
        entries = [
            SitemapEntry(store.base_url, now, "daily", "1.0"),
            SitemapEntry(f"{store.base_url}/products", now, "daily", "0.8"),
            SitemapEntry(f"{store.base_url}/about", now, "monthly", "0.6"),
            SitemapEntry(f"{store.base_url}/contact", now, "monthly", "0.6"),
        ]
        for product in products:
            entries.append(
                SitemapEntry(
                    f"{store.base_url}/product/{product.page_name}",
                    _w3c_datetime(product.updated_at),
                    "weekly",
                    "0.7",
                )
            )
        return entries
