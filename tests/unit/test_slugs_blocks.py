"""
Unit tests for slug rules and the block registry.

Tests cover:
- Slug derivation from titles and normalization of requested slugs
- Commerce URL prefix guard
- Block validation for registered and unregistered types
- Registry freeze and duplicate registration
"""

import pytest

from backend.siteengine.content.blocks import (
    BlockRegistry,
    DuplicateRegistrationError,
    HeroAttrs,
    RegistryFrozenError,
    get_block_registry,
    reset_block_registry,
)
from backend.siteengine.content.slugs import (
    check_commerce_conflict,
    normalize_slug,
    resolve_requested_slug,
    slug_from_title,
    slugify,
)
from backend.siteengine.errors import ValidationError


class TestSlugs:
    """Tests for slug helpers."""

    def test_slugify_collapses_and_trims(self):
        """Non-alphanumeric runs become one dash, edges are trimmed."""
        assert slugify("  My Test Page! ") == "my-test-page"
        assert slugify("Hello -- World") == "hello-world"
        assert slugify("Ünïcode & Co.") == "n-code-co"

    def test_slug_from_title_has_leading_slash(self):
        """Derived slugs are rooted."""
        assert slug_from_title("About Us") == "/about-us"

    def test_slug_from_title_empty(self):
        """A title with nothing to slugify is rejected."""
        with pytest.raises(ValidationError):
            slug_from_title("!!!")

    def test_normalize_keeps_segments(self):
        """Requested slugs keep their path separators."""
        assert normalize_slug("new-slug") == "/new-slug"
        assert normalize_slug("/Blog/Hello World/") == "/blog/hello-world"
        assert normalize_slug("/custom-slug-123") == "/custom-slug-123"

    def test_normalize_root(self):
        """An empty path normalizes to the root slug."""
        assert normalize_slug("/") == "/"

    def test_normalize_rejects_unusable_input(self):
        """Input with no usable characters is not mistaken for the root slug."""
        for raw in ("!!!", "/???/", "", "   "):
            with pytest.raises(ValidationError) as exc_info:
                normalize_slug(raw)
            assert exc_info.value.field_name == "slug"

    def test_requested_slug_wins_over_title(self):
        """A non-blank requested slug is used as given."""
        assert resolve_requested_slug("/custom", "Some Title") == "/custom"
        assert resolve_requested_slug("   ", "Some Title") == "/some-title"
        assert resolve_requested_slug(None, "Some Title") == "/some-title"


class TestCommerceGuard:
    """Tests for check_commerce_conflict."""

    def test_default_prefixes(self):
        """Storefront prefixes and their children are reserved."""
        with pytest.raises(ValidationError):
            check_commerce_conflict("/shop")
        with pytest.raises(ValidationError):
            check_commerce_conflict("/product/mug")

    def test_similar_slug_allowed(self):
        """A slug that only starts with the same letters is fine."""
        check_commerce_conflict("/shopping-guide")
        check_commerce_conflict("/about")

    def test_tenant_prefixes_override_defaults(self):
        """Configured prefixes replace the default for that key."""
        prefixes = {"shop": "/store"}
        with pytest.raises(ValidationError):
            check_commerce_conflict("/store", prefixes)
        check_commerce_conflict("/shop", prefixes)


class TestBlockRegistry:
    """Tests for BlockRegistry."""

    def test_builtin_types(self):
        """The global registry knows the built-in block kinds."""
        assert get_block_registry().known_types() == [
            "cta",
            "faq",
            "hero",
            "html",
            "image",
            "markdown",
        ]

    def test_registered_block_gets_defaults(self):
        """Missing attrs of registered types are filled from the model."""
        blocks = get_block_registry().validate_blocks(
            [{"type": "hero", "attrs": {"headline": "Hi"}}]
        )
        assert blocks[0]["attrs"]["headline"] == "Hi"
        assert blocks[0]["attrs"]["style"] == "center"

    def test_extra_attrs_preserved(self):
        """Unknown attrs on a registered type survive validation."""
        blocks = get_block_registry().validate_blocks(
            [{"type": "markdown", "attrs": {"content": "# Hi", "anchor": "top"}}]
        )
        assert blocks[0]["attrs"]["anchor"] == "top"

    def test_unknown_type_passes_through(self):
        """Unregistered plugins are stored opaquely."""
        block = {"type": "testimonial", "attrs": {"quote": "Great"}, "id": "b1"}
        assert get_block_registry().validate_blocks([block]) == [block]

    def test_invalid_blocks_collect_errors(self):
        """Every bad block is reported in one ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            get_block_registry().validate_blocks(
                [
                    "not-a-block",
                    {"attrs": {}},
                    {"type": "hero", "attrs": {"style": "diagonal"}},
                ]
            )
        assert len(exc_info.value.errors) == 3

    def test_blocks_must_be_list(self):
        """A non-list block payload is rejected."""
        with pytest.raises(ValidationError):
            get_block_registry().validate_blocks({"type": "hero"})

    def test_none_is_empty(self):
        """Missing blocks mean an empty page."""
        assert get_block_registry().validate_blocks(None) == []

    def test_duplicate_registration(self):
        """A tag can only be registered once."""
        registry = BlockRegistry()
        registry.register("hero", HeroAttrs)
        with pytest.raises(DuplicateRegistrationError):
            registry.register("hero", HeroAttrs)

    def test_frozen_registry(self):
        """No registration after freeze."""
        registry = BlockRegistry()
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register("hero", HeroAttrs)

    def test_global_registry_is_frozen(self):
        """Built-in types are registered once, then the global registry is frozen."""
        registry = get_block_registry()

        assert registry.frozen
        assert registry is get_block_registry()
        with pytest.raises(RegistryFrozenError):
            registry.register("gallery", HeroAttrs)

    def test_reset_gives_new_registry(self):
        """After a reset the accessor builds a fresh frozen registry."""
        first = get_block_registry()
        reset_block_registry()

        second = get_block_registry()
        assert second is not first
        assert second.frozen
        assert "hero" in second.known_types()
