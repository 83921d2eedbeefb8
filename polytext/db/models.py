"""
polytext Models — the polymorphic translation side table.

One row per (owner, field key, locale):

    translatable
    ├── id, uuid
    ├── owner_type, owner_id   — tagged reference to any translatable entity
    ├── key, locale, text
    └── created_at, updated_at

UNIQUE(locale, key, owner_type, owner_id), INDEX(locale, owner_type, owner_id).
Owners are never joined by concrete type; deleting an owner does not
cascade here.
"""

from __future__ import annotations

import uuid
from typing import Any, NamedTuple, Optional

from sqlalchemy import Column, Index, Integer, String, Text, UniqueConstraint

from polytext.db.base import Base, TimestampMixin
from polytext.engine.errors import TranslatableConfigError, TranslationStoreError

KEY_MAX_LENGTH = 75
LOCALE_MAX_LENGTH = 5


class OwnerRef(NamedTuple):
    """Tagged reference to a translation owner: discriminator + identifier."""

    owner_type: str
    owner_id: int

    @classmethod
    def of(cls, owner: Any) -> "OwnerRef":
        """Build from an OwnerRef or a HasTranslations instance."""
        if isinstance(owner, OwnerRef):
            return owner
        owner_type_of = getattr(type(owner), "translation_owner_type", None)
        if owner_type_of is None:
            raise TranslatableConfigError(
                f"{type(owner).__name__} does not implement the translatable contract",
                entity=type(owner).__name__,
            )
        owner_id = owner.translation_owner_id()
        if owner_id is None:
            raise TranslationStoreError(
                f"{type(owner).__name__} has no identity yet",
                owner_type=owner_type_of(),
                operation="reference",
            )
        return cls(owner_type_of(), owner_id)

    def __str__(self) -> str:
        return f"{self.owner_type}:{self.owner_id}"


class Translation(Base, TimestampMixin):
    __tablename__ = "translatable"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    owner_type = Column(String(255), nullable=False)
    owner_id = Column(Integer, nullable=False)
    key = Column(String(KEY_MAX_LENGTH), nullable=False)
    locale = Column(String(LOCALE_MAX_LENGTH), nullable=False)
    text = Column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "locale", "key", "owner_type", "owner_id",
            name="uq_translatable_locale_key_owner",
        ),
        Index("idx_translatable_locale_owner", "locale", "owner_type", "owner_id"),
    )

    @property
    def owner_ref(self) -> OwnerRef:
        return OwnerRef(self.owner_type, self.owner_id)

    def get_owner(self, session) -> Optional[Any]:
        """Load the owning entity through the translatable registry."""
        from polytext.engine.registry import translatable_registry

        owner_cls = translatable_registry.resolve_or_raise(self.owner_type)
        return session.get(owner_cls, self.owner_id)

    def to_dict(self) -> dict:
        return {
            "uuid": self.uuid,
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "key": self.key,
            "locale": self.locale,
            "text": self.text,
        }

    def __repr__(self) -> str:
        return (
            f"<Translation(owner='{self.owner_type}:{self.owner_id}', "
            f"key='{self.key}', locale='{self.locale}')>"
        )


def get_translation_model() -> type:
    """The translation model bound in config (``model:``)."""
    from polytext.engine.config import get_config, import_string

    return import_string(get_config().model)
