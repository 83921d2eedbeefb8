"""
polytext Translatable Registry — owner type discriminator → entity class.

The translation table references owners by a (owner_type, owner_id) pair.
This registry is how a translation row finds its way back to the mapped
class of its owner. ``HasTranslations`` subclasses register themselves at
class creation.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from polytext.engine.errors import TranslatableConfigError, TranslationObjectNotFoundError

logger = logging.getLogger("polytext.engine.registry")


class TranslatableRegistry:
    """
    In-memory map of owner types to entity classes.

    Usage:
        registry = TranslatableRegistry()
        registry.register("articles", Article)
        registry.resolve("articles")        # Article
    """

    def __init__(self):
        self._types: Dict[str, type] = {}

    def register(self, owner_type: str, cls: type) -> None:
        """Register an entity class; a type may map to one class only."""
        existing = self._types.get(owner_type)
        if existing is not None and existing is not cls and issubclass(cls, existing):
            # single-table subclass shares its parent's owner type
            return
        if existing is not None and _qualname(existing) != _qualname(cls):
            raise TranslatableConfigError(
                f"Owner type '{owner_type}' already registered by {_qualname(existing)}",
                owner_type=owner_type,
                entity=_qualname(cls),
            )
        self._types[owner_type] = cls
        logger.debug(f"Registered translatable owner type: {owner_type} → {_qualname(cls)}")

    def unregister(self, owner_type: str) -> None:
        """Remove an owner type."""
        self._types.pop(owner_type, None)

    def resolve(self, owner_type: str) -> Optional[type]:
        """Entity class for an owner type, or None."""
        return self._types.get(owner_type)

    def resolve_or_raise(self, owner_type: str) -> type:
        """Resolve or raise TranslationObjectNotFoundError."""
        cls = self.resolve(owner_type)
        if cls is None:
            raise TranslationObjectNotFoundError(
                f"Owner type not registered: {owner_type}",
                owner_type=owner_type,
            )
        return cls

    @property
    def owner_types(self) -> List[str]:
        """All registered owner types, sorted."""
        return sorted(self._types)

    def clear(self) -> None:
        self._types.clear()


def _qualname(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


# Global registry singleton
translatable_registry = TranslatableRegistry()
