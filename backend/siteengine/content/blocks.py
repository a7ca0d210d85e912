"""
Block registry for page content.

Page blocks are a heterogeneous list of typed attribute bags, each shaped
like an editor node: {"type": "<tag>", "attrs": {...}, ...}. The registry
maps a type tag to a pydantic model that validates that block's attrs.

The router never interprets blocks; it only asks the registry to validate
the sequence at the storage boundary and then stores it as-is.

Invariants:
    - Every block is a mapping with a non-empty string "type"
    - Registered types are validated against their model; extra attrs are kept
    - Unregistered types pass through unchanged (new editor plugins must not
      require a server release)
    - Once frozen, no new types can be registered

How to change safely:
    - Register new block kinds before calling freeze()
    - Only add optional attrs with defaults to existing models
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

logger = logging.getLogger(__name__)

# Global registry instance
_global_registry: Optional[BlockRegistry] = None
_registry_lock = threading.Lock()

BlockWidth = Literal["content", "wide", "full"]


class BlockAttrs(BaseModel):
    """Base model for block attributes; unknown attrs are preserved."""

    model_config = ConfigDict(extra="allow")


class HeroAttrs(BlockAttrs):
    headline: str = "Welcome"
    subheadline: str = ""
    ctaText: str = "Get Started"
    ctaLink: str = "/contact"
    imageSrc: Optional[str] = None
    style: Literal["center", "split", "minimal"] = "center"


class CtaAttrs(BlockAttrs):
    headline: str = "Ready to get started?"
    subheadline: str = ""
    buttonText: str = "Get Access"
    buttonLink: str = "/pricing"
    style: Literal["simple", "card", "band"] = "simple"


class ImageAttrs(BlockAttrs):
    src: str = ""
    alt: str = ""
    title: Optional[str] = None
    caption: Optional[str] = None
    width: Literal["full", "wide", "centered"] = "full"
    aspectRatio: str = "auto"
    blockWidth: BlockWidth = "content"


class MarkdownAttrs(BlockAttrs):
    content: str = ""
    blockWidth: BlockWidth = "content"


class HtmlAttrs(BlockAttrs):
    content: str = ""
    isSandboxed: bool = False
    blockWidth: BlockWidth = "content"


class FaqItem(BaseModel):
    id: str
    question: str = "Question?"
    answer: str = "Answer."


class FaqAttrs(BlockAttrs):
    headline: str = "Frequently Asked Questions"
    items: List[FaqItem] = Field(default_factory=list)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a block type twice."""
    pass


class BlockRegistry:
    """Registry of block type tags and their attribute models.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free

    Example:
        >>> registry = BlockRegistry()
        >>> registry.register("hero", HeroAttrs)
        >>> registry.validate_blocks([{"type": "hero", "attrs": {"headline": "Hi"}}])
        [{'type': 'hero', 'attrs': {'headline': 'Hi', ...}}]
    """

    def __init__(self) -> None:
        self._models: Dict[str, Type[BlockAttrs]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, type_tag: str, model: Type[BlockAttrs]) -> None:
        """Register the attribute model for a block type.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the tag is already registered
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register block type '{type_tag}': registry is frozen"
                )
            if type_tag in self._models:
                raise DuplicateRegistrationError(
                    f"Block type '{type_tag}' already registered as {self._models[type_tag].__name__}"
                )
            self._models[type_tag] = model
            logger.debug(f"Registered block type: {type_tag}")

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def get(self, type_tag: str) -> Optional[Type[BlockAttrs]]:
        return self._models.get(type_tag)

    def known_types(self) -> List[str]:
        return sorted(self._models)

    def validate_blocks(self, blocks: Any) -> List[Dict[str, Any]]:
        """Validate a block sequence.

        Args:
            blocks: Block descriptors as received from the editor

        Returns:
            The blocks, with defaults filled into registered types' attrs

        Raises:
            ValidationError: If the sequence or any block is malformed
        """
        if blocks is None:
            return []
        if not isinstance(blocks, list):
            raise ValidationError("blocks must be a list", field_name="blocks")

        validated: List[Dict[str, Any]] = []
        errors: List[str] = []
        for index, block in enumerate(blocks):
            if not isinstance(block, dict):
                errors.append(f"Block {index}: must be an object")
                continue
            type_tag = block.get("type")
            if not isinstance(type_tag, str) or not type_tag:
                errors.append(f"Block {index}: missing 'type'")
                continue

            model = self._models.get(type_tag)
            if model is None:
                validated.append(block)
                continue

            try:
                attrs = model.model_validate(block.get("attrs") or {})
            except PydanticValidationError as e:
                for err in e.errors():
                    loc = ".".join(str(p) for p in err["loc"])
                    errors.append(f"Block {index} ({type_tag}): {loc}: {err['msg']}")
                continue
            validated.append({**block, "attrs": attrs.model_dump(exclude_none=True)})

        if errors:
            raise ValidationError("Invalid blocks", field_name="blocks", errors=errors)
        return validated


def _register_builtin(registry: BlockRegistry) -> None:
    registry.register("hero", HeroAttrs)
    registry.register("cta", CtaAttrs)
    registry.register("image", ImageAttrs)
    registry.register("markdown", MarkdownAttrs)
    registry.register("html", HtmlAttrs)
    registry.register("faq", FaqAttrs)


def get_block_registry() -> BlockRegistry:
    """Get the global block registry: built-in block types registered, then frozen."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = BlockRegistry()
            _register_builtin(_global_registry)
            _global_registry.freeze()
        return _global_registry


def reset_block_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None
