"""Unit tests for the storefront renderer."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from buildcart.core.exceptions import RenderError
from buildcart.generators.storefront.site import (
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_SECONDARY_COLOR,
    FEATURED_PRODUCT_LIMIT,
    PLACEHOLDER_IMAGE,
    StorefrontRenderer,
)
from buildcart.models.store import Product, StoreOwner, StoreSnapshot

EXPECTED_PAGES = {
    "index.html",
    "products.html",
    "cart.html",
    "checkout.html",
    "contact.html",
    "about.html",
    "styles.css",
    "scripts.js",
    "sitemap.xml",
    "robots.txt",
}

GENERATED_AT = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)


def snapshot(**overrides) -> StoreSnapshot:
    fields = {
        "id": "store-1",
        "name": "Acme",
        "slug": "acme",
        "owner": StoreOwner(id="user-1"),
    }
    fields.update(overrides)
    return StoreSnapshot(**fields)


def product(product_id: str, **overrides) -> Product:
    fields = {"id": product_id, "name": f"Product {product_id}", "price": Decimal("10")}
    fields.update(overrides)
    return Product(**fields)


class TestRenderOutput:
    """Tests for the set of generated documents."""

    def test_renders_fixed_document_set(self, renderer: StorefrontRenderer, acme_store):
        """Test every fixed document plus one page per active product."""
        files = renderer.render(acme_store.to_snapshot(), generated_at=GENERATED_AT)

        assert set(files) == EXPECTED_PAGES | {
            "product/rocket-skates.html",
            "product/giant-magnet.html",
        }
        assert all(isinstance(content, bytes) for content in files.values())

    def test_product_page_falls_back_to_id(self, renderer: StorefrontRenderer):
        files = renderer.render(snapshot(products=[product("sku-42")]))

        assert "product/sku-42.html" in files

    def test_listing_has_one_card_per_product_in_order(self, renderer: StorefrontRenderer):
        products = [product(f"p{i}", name=f"Item {i}") for i in range(3)]
        listing = renderer.render(snapshot(products=products))["products.html"].decode()

        assert listing.count('class="product-card"') == 3
        positions = [listing.index(f"Item {i}") for i in range(3)]
        assert positions == sorted(positions)

    def test_home_features_at_most_six_products(self, renderer: StorefrontRenderer):
        products = [product(f"p{i}") for i in range(FEATURED_PRODUCT_LIMIT + 3)]
        files = renderer.render(snapshot(products=products))

        home = files["index.html"].decode()
        listing = files["products.html"].decode()
        assert home.count('class="product-card"') == FEATURED_PRODUCT_LIMIT
        assert listing.count('class="product-card"') == FEATURED_PRODUCT_LIMIT + 3

    def test_zero_products_renders_empty_sections(self, renderer: StorefrontRenderer):
        """Test an empty store still renders listing and home pages."""
        files = renderer.render(snapshot())

        listing = files["products.html"].decode()
        home = files["index.html"].decode()
        assert 'class="products-grid"' in listing
        assert "product-card" not in listing
        assert "No products available yet." in listing
        assert "product-card" not in home
        assert not any(path.startswith("product/") for path in files)

    def test_render_is_deterministic(self, renderer: StorefrontRenderer, acme_store):
        first = renderer.render(acme_store.to_snapshot(), generated_at=GENERATED_AT)
        second = renderer.render(acme_store.to_snapshot(), generated_at=GENERATED_AT)

        assert first == second

    def test_only_sitemap_depends_on_render_time(self, renderer: StorefrontRenderer, acme_store):
        first = renderer.render(acme_store.to_snapshot(), generated_at=GENERATED_AT)
        later = renderer.render(
            acme_store.to_snapshot(),
            generated_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )

        changed = {path for path in first if first[path] != later[path]}
        assert changed == {"sitemap.xml"}


class TestRenderContent:
    """Tests for defaults, escaping and generated metadata."""

    def test_theme_defaults_applied(self, renderer: StorefrontRenderer):
        css = renderer.render(snapshot())["styles.css"].decode()

        assert DEFAULT_PRIMARY_COLOR in css
        assert DEFAULT_SECONDARY_COLOR in css

    def test_theme_colors_used(self, renderer: StorefrontRenderer, acme_store):
        css = renderer.render(acme_store.to_snapshot())["styles.css"].decode()

        assert "#FF5500" in css

    def test_invalid_theme_color_replaced_by_default(self, renderer: StorefrontRenderer):
        theme = {"primary_color": "red; } body { display: none"}
        css = renderer.render(snapshot(theme=theme))["styles.css"].decode()

        assert "display: none" not in css
        assert DEFAULT_PRIMARY_COLOR in css

    def test_product_without_images_uses_placeholder(self, renderer: StorefrontRenderer):
        files = renderer.render(snapshot(products=[product("p1")]))

        assert PLACEHOLDER_IMAGE in files["product/p1.html"].decode()
        assert PLACEHOLDER_IMAGE in files["products.html"].decode()

    def test_user_text_is_escaped(self, renderer: StorefrontRenderer):
        evil = product("p1", name="<script>alert(1)</script>")
        files = renderer.render(snapshot(name="Tom & Jerry", products=[evil]))

        page = files["product/p1.html"].decode()
        assert "<script>alert(1)</script>" not in page
        assert "&lt;script&gt;alert(1)&lt;/script&gt;" in page
        assert "Tom &amp; Jerry" in files["index.html"].decode()

    def test_price_formatted_with_two_decimals(self, renderer: StorefrontRenderer, acme_store):
        listing = renderer.render(acme_store.to_snapshot())["products.html"].decode()

        assert "$49.99" in listing
        assert "$15.00" in listing

    def test_sitemap_entries(self, renderer: StorefrontRenderer, acme_store):
        sitemap = renderer.render(
            acme_store.to_snapshot(), generated_at=GENERATED_AT
        )["sitemap.xml"].decode()

        assert sitemap.count("<url>") == 4 + 2
        assert "<loc>https://acme.stores.buildcart.ai</loc>" in sitemap
        assert "<loc>https://acme.stores.buildcart.ai/product/rocket-skates</loc>" in sitemap
        assert "<lastmod>2024-05-01T12:00:00Z</lastmod>" in sitemap
        assert "<lastmod>2024-06-01T09:00:00Z</lastmod>" in sitemap

    def test_robots_points_at_sitemap(self, renderer: StorefrontRenderer):
        robots = renderer.render(snapshot())["robots.txt"].decode()

        assert "User-agent: *" in robots
        assert "Sitemap: https://acme.stores.buildcart.ai/sitemap.xml" in robots

    def test_custom_domain_used_for_urls(self, renderer: StorefrontRenderer):
        store = snapshot(custom_domain="shop.example.com")

        assert renderer.store_url(store) == "https://shop.example.com"
        robots = renderer.render(store)["robots.txt"].decode()
        assert "Sitemap: https://shop.example.com/sitemap.xml" in robots

    def test_script_embeds_catalog(self, renderer: StorefrontRenderer, acme_store):
        script = renderer.render(acme_store.to_snapshot())["scripts.js"].decode()

        assert '"prod-1"' in script
        assert "Rocket Skates" in script
        assert "prod-3" not in script


class TestRenderValidation:
    """Tests for structurally invalid snapshots."""

    def test_missing_name_rejected(self, renderer: StorefrontRenderer):
        with pytest.raises(RenderError) as exc_info:
            renderer.render(snapshot(name=""))

        assert exc_info.value.details["field"] == "name"

    def test_unsafe_slug_rejected(self, renderer: StorefrontRenderer):
        with pytest.raises(RenderError):
            renderer.render(snapshot(slug="../etc"))

    def test_product_without_id_rejected(self, renderer: StorefrontRenderer):
        with pytest.raises(RenderError):
            renderer.render(snapshot(products=[product("")]))

    def test_unsafe_url_handle_rejected(self, renderer: StorefrontRenderer):
        with pytest.raises(RenderError):
            renderer.render(snapshot(products=[product("p1", url_handle="../../index")]))

    def test_duplicate_page_names_rejected(self, renderer: StorefrontRenderer):
        products = [product("p1", url_handle="same"), product("p2", url_handle="same")]

        with pytest.raises(RenderError, match="duplicate"):
            renderer.render(snapshot(products=products))
