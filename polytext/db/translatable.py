"""
polytext Translatable Entities — field interception for SQLAlchemy models.

Declare translatable fields with an explicit accessor per field:

    class Article(HasTranslations, Base):
        __tablename__ = "articles"

        id = Column(Integer, primary_key=True)
        base_title = Column("title", String(200))
        title = translated("base_title")

Reading ``article.title`` walks the locale chain through the instance's
TranslationIndex and falls back to ``base_title``. Assigning to it writes a
translation for the first chain locale. Instances without an identity keep
the write on the instance and replay it right after their INSERT.

Keys listed in ``__translatable__`` without an accessor are translatable
through the explicit API (``get_translated`` / ``set_translation``) and the
query helpers; attribute access to them is not intercepted.

Class options:
    __translatable__             extra translatable keys
    __translatable_fallback__    entity fallback locale(s)
    __translation_owner_type__   owner discriminator (default: table name)
    __auto_translate__           override ``auto_translate_attributes``
    __translation_rules__        {key: pydantic type} for payload validation
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Union

from sqlalchemy import and_, event, inspect
from sqlalchemy.orm import declared_attr, foreign, object_session, relationship

from polytext.db.models import OwnerRef, get_translation_model
from polytext.engine.config import get_config
from polytext.engine.context import TranslationContext, get_translation_context
from polytext.engine.errors import TranslatableConfigError, TranslationStoreError
from polytext.engine.index import TranslationIndex
from polytext.engine.logging import emit, log_translation_replay
from polytext.engine.registry import translatable_registry
from polytext.engine.resolver import get_locale_resolver
from polytext.engine.store import TranslationStore, is_empty_text, replay_pending

logger = logging.getLogger("polytext.db.translatable")

LocaleSpec = Union[str, Sequence[str], None]

# Per-instance, non-mapped state (kept in the instance __dict__)
_INDEX_ATTR = "_polytext_index"
_PENDING_ATTR = "_polytext_pending"
_TOKEN_ATTR = "_polytext_token"
_BYPASS_ATTR = "_polytext_bypass"


class translated:
    """
    Accessor for one translatable field backed by a base column attribute.

    At class level it returns the base column attribute, so
    ``Article.title == "x"`` filters on the stored base value.
    """

    def __init__(self, base_attr: str, rules: Any = None):
        self.base_attr = base_attr
        self.rules = rules
        self.key: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.key = name

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return getattr(owner, self.base_attr)
        return instance._read_field(self.key)

    def __set__(self, instance: Any, value: Any) -> None:
        instance._write_field(self.key, value)

    def __repr__(self) -> str:
        return f"<translated({self.key} → {self.base_attr})>"


class HasTranslations:
    """Mixin implementing the translatable entity contract."""

    __translatable__: Sequence[str] = ()
    __translatable_fallback__: LocaleSpec = None
    __translation_owner_type__: Optional[str] = None
    __auto_translate__: Optional[bool] = None
    __translation_rules__: Dict[str, Any] = {}

    _translatable_keys: FrozenSet[str] = frozenset()
    _translated_accessors: Dict[str, translated] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "__mapper__" not in cls.__dict__:
            # abstract / unmapped intermediate class
            return

        accessors: Dict[str, translated] = {}
        for klass in reversed(cls.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, translated):
                    accessors[name] = value

        keys = set(accessors) | set(cls.__translatable__)
        if not keys:
            raise TranslatableConfigError(
                f"{cls.__name__} declares no translatable fields",
                entity=cls.__name__,
            )
        for key in keys:
            base_attr = accessors[key].base_attr if key in accessors else key
            if not cls.__mapper__.has_property(base_attr):
                raise TranslatableConfigError(
                    f"{cls.__name__}.{key}: base attribute '{base_attr}' is not mapped",
                    entity=cls.__name__,
                    key=key,
                )
        if len(cls.__mapper__.primary_key) != 1:
            raise TranslatableConfigError(
                f"{cls.__name__} needs a single-column primary key to own translations",
                entity=cls.__name__,
            )

        cls._translatable_keys = frozenset(keys)
        cls._translated_accessors = accessors
        translatable_registry.register(cls.translation_owner_type(), cls)

    @declared_attr
    def translations(cls):
        """Queryable (read-only) relation to the owner's translation rows."""
        return relationship(
            get_translation_model,
            primaryjoin=lambda: _owner_join(cls),
            viewonly=True,
            lazy="select",
        )

    # ── Class-level contract ──

    @classmethod
    def translated_keys(cls) -> FrozenSet[str]:
        return cls._translatable_keys

    @classmethod
    def is_translatable(cls, key: str) -> bool:
        return key in cls._translatable_keys

    @classmethod
    def base_attribute(cls, key: str) -> str:
        """Name of the mapped attribute holding the base value for ``key``."""
        accessor = cls._translated_accessors.get(key)
        return accessor.base_attr if accessor is not None else key

    @classmethod
    def translation_rules(cls, key: str) -> Any:
        accessor = cls._translated_accessors.get(key)
        if accessor is not None and accessor.rules is not None:
            return accessor.rules
        return cls.__translation_rules__.get(key)

    @classmethod
    def translation_owner_type(cls) -> str:
        return cls.__translation_owner_type__ or cls.__tablename__

    @classmethod
    def auto_translates(cls) -> bool:
        if cls.__auto_translate__ is not None:
            return cls.__auto_translate__
        return get_config().auto_translate_attributes

    @classmethod
    def translation_query(cls, session):
        """Start a translation-aware query over this entity."""
        from polytext.db.query import TranslationQuery

        return TranslationQuery(cls, session)

    # ── Instance plumbing ──

    def translation_owner_id(self) -> Optional[Any]:
        """Primary key once persisted, else None."""
        identity = inspect(self).identity
        return identity[0] if identity else None

    def get_translation_fallback(self) -> LocaleSpec:
        """Entity fallback policy: a locale, a list of locales, or None."""
        return self.__translatable_fallback__

    @property
    def translation_index(self) -> TranslationIndex:
        index = self.__dict__.get(_INDEX_ATTR)
        if index is None:
            index = TranslationIndex(self._load_translation_rows)
            self.__dict__[_INDEX_ATTR] = index
        return index

    def _load_translation_rows(self, locales: List[str]) -> List[Any]:
        owner_id = self.translation_owner_id()
        session = object_session(self)
        if owner_id is None or session is None:
            return []
        owner = OwnerRef(self.translation_owner_type(), owner_id)
        return TranslationStore(session).find_many(owner, locales=locales)

    def _store(self, operation: str) -> TranslationStore:
        session = object_session(self)
        if session is None:
            raise TranslationStoreError(
                f"{type(self).__name__} is not attached to a session",
                owner_type=self.translation_owner_type(),
                owner_id=self.translation_owner_id(),
                operation=operation,
            )
        return TranslationStore(session)

    def _owner_ref(self) -> OwnerRef:
        return OwnerRef(self.translation_owner_type(), self.translation_owner_id())

    def bypass_translations(self, enabled: bool = True) -> None:
        """Instance-level bypass: reads/writes go to the base columns."""
        self.__dict__[_BYPASS_ATTR] = enabled

    def translations_bypassed(self, context: Optional[TranslationContext] = None) -> bool:
        ctx = context or get_translation_context()
        return ctx.bypass or self.__dict__.get(_BYPASS_ATTR, False)

    @property
    def pending_translations(self) -> Dict[tuple, Optional[str]]:
        """Deferred ``(locale, key) → text`` writes awaiting this instance's INSERT."""
        return dict(self.__dict__.get(_PENDING_ATTR, {}))

    # ── Locale resolution ──

    def translation_locale_chain(
        self,
        locales: LocaleSpec = None,
        context: Optional[TranslationContext] = None,
    ) -> List[str]:
        return get_locale_resolver().resolve_fallback_chain(
            locales,
            entity_fallback=self.get_translation_fallback(),
            ctx=context,
        )

    def _target_locale(self, locale: Optional[str], context: Optional[TranslationContext]) -> str:
        if locale is not None:
            return locale
        chain = self.translation_locale_chain(context=context)
        if chain:
            return chain[0]
        return get_locale_resolver().resolve(ctx=context)

    @staticmethod
    def _default_locale_on_model() -> Optional[str]:
        if get_config().default_locale_on_model:
            return get_locale_resolver().default_locale()
        return None

    # ── Reads ──

    def _read_field(self, key: str) -> Any:
        if not self.auto_translates():
            return getattr(self, self.base_attribute(key))
        return self.get_translated(key)

    def get_translated(
        self,
        key: str,
        locales: LocaleSpec = None,
        context: Optional[TranslationContext] = None,
    ) -> Any:
        """Best translation for ``key`` along the chain, else the base value."""
        if not self.is_translatable(key):
            return getattr(self, key)
        base_attr = self.base_attribute(key)
        if self.translations_bypassed(context):
            return getattr(self, base_attr)

        chain = self.translation_locale_chain(locales, context)
        index = self.translation_index
        on_model = self._default_locale_on_model()
        if on_model is None or on_model not in chain:
            text = index.lookup(key, chain)
        else:
            text = None
            for locale in chain:
                if locale == on_model:
                    text = getattr(self, base_attr)
                else:
                    text = index.get(locale, key)
                if text is not None:
                    break

        return text if text is not None else getattr(self, base_attr)

    def get_untranslated(self, key: str) -> Any:
        """The stored base value, ignoring translations."""
        if not self.is_translatable(key):
            return getattr(self, key)
        return getattr(self, self.base_attribute(key))

    def has_translation(self, key: str, locale: Optional[str] = None) -> bool:
        """Whether a translation row exists for ``key`` in ``locale`` (default: first chain locale)."""
        locale = self._target_locale(locale, None)
        return self.translation_index.get(locale, key) is not None

    def get_translation(self, key: str, locale: Optional[str] = None) -> Optional[str]:
        """Text stored for exactly ``locale`` (default: first chain locale), no fallback."""
        locale = self._target_locale(locale, None)
        return self.translation_index.get(locale, key)

    def get_translation_record(self, key: str, locale: Optional[str] = None) -> Optional[Any]:
        """The Translation row for exactly ``locale`` (default: first chain locale)."""
        if self.translation_owner_id() is None or object_session(self) is None:
            return None
        locale = self._target_locale(locale, None)
        return self._store("find").find_record(self._owner_ref(), key, locale)

    def get_translations(self, key: Optional[str] = None, locale: Optional[str] = None) -> List[Any]:
        """All (or filtered) Translation rows of this instance."""
        if self.translation_owner_id() is None or object_session(self) is None:
            return []
        return self._store("find").find_many(
            self._owner_ref(),
            keys=None if key is None else [key],
            locales=None if locale is None else [locale],
        )

    def get_all_translations(self, key: str) -> Dict[str, str]:
        """``locale → text`` for every stored (or pending) translation of ``key``."""
        values = {row.locale: row.text for row in self.get_translations(key)}
        for (locale, pending_key), text in self.__dict__.get(_PENDING_ATTR, {}).items():
            if pending_key != key:
                continue
            if is_empty_text(text) and get_config().empty_value_policy == "delete":
                values.pop(locale, None)
            else:
                values[locale] = text or ""
        return values

    # ── Writes ──

    def _write_field(self, key: str, value: Any) -> None:
        if not self.auto_translates():
            setattr(self, self.base_attribute(key), value)
            return
        self.set_translated(key, value)

    def set_translated(
        self,
        key: str,
        value: Any,
        locale: Optional[str] = None,
        context: Optional[TranslationContext] = None,
    ) -> "HasTranslations":
        """Field write: translation for the target locale, or the base column."""
        if not self.is_translatable(key):
            setattr(self, key, value)
            return self
        if self.translations_bypassed(context):
            setattr(self, self.base_attribute(key), value)
            return self

        target = self._target_locale(locale, context)
        if target == self._default_locale_on_model():
            setattr(self, self.base_attribute(key), value)
            return self
        return self.set_translation(key, value, target, context=context)

    def set_translation(
        self,
        key: str,
        value: Optional[str],
        locale: Optional[str] = None,
        context: Optional[TranslationContext] = None,
    ) -> "HasTranslations":
        """
        Store a translation row for ``key`` (default locale: first of the chain).

        Unsaved instances defer the write until their INSERT. Store errors
        propagate and leave the index untouched.
        """
        locale = self._target_locale(locale, context)

        if self.translation_owner_id() is None:
            self._defer_translation(locale, key, value)
            return self

        record = self._store("upsert").upsert(self._owner_ref(), key, locale, value)
        self.translation_index.patch(locale, key, None if record is None else record.text)
        return self

    def delete_translation(self, key: str, locale: Optional[str] = None) -> bool:
        """Remove the row for ``key`` in ``locale`` (default: first chain locale)."""
        locale = self._target_locale(locale, None)

        if self.translation_owner_id() is None:
            pending = self.__dict__.get(_PENDING_ATTR, {})
            removed = pending.pop((locale, key), None) is not None
            self.translation_index.patch(locale, key, None)
            return removed

        removed = self._store("delete").delete(self._owner_ref(), key, locale)
        self.translation_index.patch(locale, key, None)
        return removed

    def _defer_translation(self, locale: str, key: str, value: Optional[str]) -> None:
        pending = self.__dict__.setdefault(_PENDING_ATTR, {})
        token = self.__dict__.setdefault(_TOKEN_ATTR, uuid.uuid4().hex)
        pending[(locale, key)] = value

        if is_empty_text(value):
            text = None if get_config().empty_value_policy == "delete" else ""
        else:
            text = value
        self.translation_index.patch(locale, key, text)
        logger.debug(f"Deferred translation {key}[{locale}] on unsaved {type(self).__name__} ({token})")


def _owner_join(cls: type):
    model = get_translation_model()
    return and_(
        foreign(model.owner_id) == cls.__mapper__.primary_key[0],
        model.owner_type == cls.translation_owner_type(),
    )


# ---------------------------------------------------------------------------
# Instance / mapper events
# ---------------------------------------------------------------------------

@event.listens_for(HasTranslations, "load", propagate=True)
def _reset_index_on_load(target, context):
    index = target.__dict__.get(_INDEX_ATTR)
    if index is not None:
        index.reset()


@event.listens_for(HasTranslations, "refresh", propagate=True)
def _reset_index_on_refresh(target, context, attrs):
    if attrs is not None and set(attrs) <= {"translations"}:
        return
    index = target.__dict__.get(_INDEX_ATTR)
    if index is not None:
        index.reset()


@event.listens_for(HasTranslations, "after_insert", propagate=True)
def _replay_deferred_translations(mapper, connection, target):
    pending = target.__dict__.pop(_PENDING_ATTR, None)
    if not pending:
        return
    owner = OwnerRef(
        type(target).translation_owner_type(),
        mapper.primary_key_from_instance(target)[0],
    )
    count = replay_pending(connection, owner, pending)
    token = target.__dict__.get(_TOKEN_ATTR, "")
    logger.debug(f"Replayed {count} deferred translation(s) for {owner} ({token})")
    emit(log_translation_replay(owner.owner_type, owner.owner_id, token, count))
