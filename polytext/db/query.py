"""
polytext Translation Queries — translation-aware SELECTs over an entity.

    q = (
        Article.translation_query(session)
        .search_by_translation("title", "bar", operator="starts_with")
        .order_by_translation("title")
        .with_translated_columns()
        .with_translations()
    )
    articles = q.all()

Every method returns a new TranslationQuery; the wrapped SQLAlchemy
``Select`` is never mutated in place. Locale chains are resolved when the
method is called, with the entity's ``__translatable_fallback__`` as its
fallback policy. An empty chain matches nothing in searches and leaves
ordering / projections on the base columns.
"""

from __future__ import annotations

import copy
import logging
import time
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, case, false, func, null, select
from sqlalchemy.exc import MultipleResultsFound, NoResultFound
from sqlalchemy.orm import Session

from polytext.db.models import get_translation_model
from polytext.engine.context import TranslationContext
from polytext.engine.logging import emit, log_query_event
from polytext.engine.resolver import get_locale_resolver

logger = logging.getLogger("polytext.db.query")

EAGER_CHUNK_SIZE = 500

SEARCH_OPERATORS = ("contains", "like", "exact", "starts_with", "ends_with")

Keys = Union[str, Sequence[str]]
LocaleSpec = Union[str, Sequence[str], None]


class TranslationQuery:
    """Generative, translation-aware wrapper around ``select(entity)``."""

    def __init__(self, entity: type, session: Session, stmt: Any = None):
        self.entity = entity
        self.session = session
        self.model = get_translation_model()
        self._stmt = stmt if stmt is not None else select(entity)
        self._eager_chain: Optional[List[str]] = None
        self._columns: Optional[Tuple[List[str], List[str]]] = None
        self._bypass = False

    def _clone(self, **changes: Any) -> "TranslationQuery":
        q = copy.copy(self)
        q.__dict__.update(changes)
        return q

    # ── Building blocks ──

    def _chain(self, locales: LocaleSpec) -> List[str]:
        return get_locale_resolver().resolve_fallback_chain(
            locales, entity_fallback=self.entity.__translatable_fallback__,
        )

    @property
    def _owner_pk(self):
        return self.entity.__mapper__.primary_key[0]

    def _base_column(self, key: str):
        return getattr(self.entity, self.entity.base_attribute(key))

    def _ranked(self, key: str, chain: List[str]):
        """
        One row per owner: the translation of ``key`` in the best chain
        locale (newest row first on ties), as column ``text`` with ``rn == 1``.
        """
        t = self.model
        rank = case(
            {locale: position for position, locale in enumerate(chain)},
            value=t.locale,
            else_=len(chain),
        )
        rn = func.row_number().over(
            partition_by=t.owner_id,
            order_by=[rank, t.created_at.desc(), t.id.desc()],
        )
        return (
            select(t.owner_id.label("owner_id"), t.text.label("text"), rn.label("rn"))
            .where(
                t.owner_type == self.entity.translation_owner_type(),
                t.key == key,
                t.locale.in_(chain),
            )
            .subquery()
        )

    def _join_ranked(self, stmt: Any, ranked: Any) -> Any:
        return stmt.outerjoin(ranked, and_(ranked.c.owner_id == self._owner_pk, ranked.c.rn == 1))

    def _match(self, search: str, operator: str):
        text = self.model.text
        if operator in ("contains", "like"):
            return text.icontains(search, autoescape=True)
        if operator == "starts_with":
            return text.istartswith(search, autoescape=True)
        if operator == "ends_with":
            return text.iendswith(search, autoescape=True)
        if operator == "exact":
            return func.lower(text) == func.lower(search)
        raise ValueError(f"Unknown search operator '{operator}', expected one of {SEARCH_OPERATORS}")

    # ── Plumbing ──

    def where(self, *criteria: Any) -> "TranslationQuery":
        return self._clone(_stmt=self._stmt.where(*criteria))

    filter = where

    def filter_by(self, **values: Any) -> "TranslationQuery":
        """Equality filters on the entity (base columns for translatable keys)."""
        return self.where(*[getattr(self.entity, name) == value for name, value in values.items()])

    def order_by(self, *clauses: Any) -> "TranslationQuery":
        return self._clone(_stmt=self._stmt.order_by(*clauses))

    def limit(self, limit: Optional[int]) -> "TranslationQuery":
        return self._clone(_stmt=self._stmt.limit(limit))

    def offset(self, offset: Optional[int]) -> "TranslationQuery":
        return self._clone(_stmt=self._stmt.offset(offset))

    # ── Translation filters ──

    def search_by_translation(
        self,
        keys: Keys,
        search: str,
        locales: LocaleSpec = None,
        operator: str = "contains",
    ) -> "TranslationQuery":
        """
        Entities with a translation of any of ``keys`` in any chain locale
        matching ``search`` (case-insensitive, wildcards escaped).
        """
        keys = [keys] if isinstance(keys, str) else list(keys)
        match = self._match(search, operator)
        chain = self._chain(locales)
        if not chain or not keys:
            return self.where(false())
        t = self.model
        return self.where(
            self.entity.translations.any(and_(t.key.in_(keys), t.locale.in_(chain), match))
        )

    def search_by_translation_exact(self, keys: Keys, search: str, locales: LocaleSpec = None) -> "TranslationQuery":
        return self.search_by_translation(keys, search, locales, operator="exact")

    def search_by_translation_starts_with(self, keys: Keys, search: str, locales: LocaleSpec = None) -> "TranslationQuery":
        return self.search_by_translation(keys, search, locales, operator="starts_with")

    def search_by_translation_ends_with(self, keys: Keys, search: str, locales: LocaleSpec = None) -> "TranslationQuery":
        return self.search_by_translation(keys, search, locales, operator="ends_with")

    def where_has_translation(self, key: str, locales: LocaleSpec = None) -> "TranslationQuery":
        """Entities holding any translation of ``key`` within the chain."""
        chain = self._chain(locales)
        if not chain:
            return self.where(false())
        t = self.model
        return self.where(self.entity.translations.any(and_(t.key == key, t.locale.in_(chain))))

    def where_translation(
        self,
        key: str,
        value: str,
        locales: LocaleSpec = None,
        operator: str = "exact",
    ) -> "TranslationQuery":
        return self.search_by_translation(key, value, locales, operator=operator)

    # ── Ordering / projection ──

    def order_by_translation(
        self,
        key: str,
        direction: str = "asc",
        locales: LocaleSpec = None,
    ) -> "TranslationQuery":
        """
        Order by the translated value of ``key`` (base value when the chain
        has none); entities with no value at all come last either way.
        """
        if direction.lower() not in ("asc", "desc"):
            raise ValueError(f"direction must be 'asc' or 'desc', got '{direction}'")

        stmt = self._stmt
        base = self._base_column(key)
        chain = self._chain(locales)
        if chain:
            ranked = self._ranked(key, chain)
            stmt = self._join_ranked(stmt, ranked)
            value = func.coalesce(ranked.c.text, base)
        else:
            value = base

        nulls_last = case((value.is_(None), 1), else_=0)
        ordered = value.desc() if direction.lower() == "desc" else value.asc()
        return self._clone(_stmt=stmt.order_by(nulls_last, ordered))

    def with_translated_columns(self, keys: Optional[Keys] = None, locales: LocaleSpec = None) -> "TranslationQuery":
        """
        Add ``<key>`` (translation, else base) and ``<key>_untranslated``
        columns per key; ``all()`` primes each instance's index from them.
        """
        if keys is None:
            keys = sorted(self.entity.translated_keys())
        elif isinstance(keys, str):
            keys = [keys]
        return self._clone(_columns=(list(keys), self._chain(locales)), _bypass=False)

    def with_translations(self, locales: LocaleSpec = None) -> "TranslationQuery":
        """Eager-load the translation rows of every result for the chain locales."""
        return self._clone(_eager_chain=self._chain(locales))

    def without_translation_override(self) -> "TranslationQuery":
        """
        Raw base values: no column substitution. ``rows()`` carries the base
        value of every translatable key as ``<key>``; read instances under
        ``translation_context`` to get base values from them too.
        """
        return self._clone(_columns=None, _bypass=True)

    @property
    def translation_context(self) -> Optional[TranslationContext]:
        """Bypassed context for reading results of an override-free query."""
        return TranslationContext(bypass=True) if self._bypass else None

    @property
    def statement(self) -> Any:
        """The SELECT that ``all()`` executes."""
        stmt = self._stmt
        if self._bypass:
            return stmt.add_columns(*[
                self._base_column(key).label(key) for key in sorted(self.entity.translated_keys())
            ])
        if self._columns is None:
            return stmt
        keys, chain = self._columns
        for key in keys:
            base = self._base_column(key)
            if chain:
                ranked = self._ranked(key, chain)
                stmt = self._join_ranked(stmt, ranked)
                translation = ranked.c.text
            else:
                translation = null()
            stmt = stmt.add_columns(
                func.coalesce(translation, base).label(key),
                base.label(f"{key}_untranslated"),
                translation.label(f"{key}_translation"),
            )
        return stmt

    # ── Execution ──

    def rows(self) -> List[Any]:
        """Raw result rows of ``statement``."""
        return self.session.execute(self.statement).all()

    def all(self) -> List[Any]:
        start = time.perf_counter()
        rows: List[Any] = []
        if self._columns is None:
            instances = list(self.session.scalars(self.statement).all())
        else:
            rows = self.rows()
            instances = [row[0] for row in rows]

        if self._eager_chain:
            self._eager_load(instances, self._eager_chain)
        # after seeding, which drops resolved values
        self._prime(rows)

        duration_ms = (time.perf_counter() - start) * 1000
        chain = self._columns[1] if self._columns else (self._eager_chain or [])
        logger.debug(f"{self.entity.__name__} query returned {len(instances)} row(s) in {duration_ms:.1f}ms")
        emit(log_query_event(
            "translation_query",
            self.entity.translation_owner_type(),
            chain,
            duration_ms,
            row_count=len(instances),
            keys=self._columns[0] if self._columns else None,
        ))
        return instances

    def first(self) -> Optional[Any]:
        results = self.limit(1).all()
        return results[0] if results else None

    def one(self) -> Any:
        results = self.limit(2).all()
        if not results:
            raise NoResultFound("No row was found when one was required")
        if len(results) > 1:
            raise MultipleResultsFound("Multiple rows were found when exactly one was required")
        return results[0]

    def count(self) -> int:
        subquery = self._stmt.order_by(None).subquery()
        return self.session.scalar(select(func.count()).select_from(subquery))

    def __iter__(self):
        return iter(self.all())

    # ── Index population ──

    def _prime(self, rows: Iterable[Any]) -> None:
        if self._columns is None:
            return
        keys, chain = self._columns
        for row in rows:
            index = row[0].translation_index
            mapping = row._mapping
            for key in keys:
                index.prime(key, chain, mapping[f"{key}_translation"])

    def _eager_load(self, instances: List[Any], chain: List[str]) -> None:
        t = self.model
        by_id: Dict[Any, Any] = {instance.translation_owner_id(): instance for instance in instances}
        owner_ids = list(by_id)
        rows_by_owner: Dict[Any, List[Any]] = defaultdict(list)

        for offset in range(0, len(owner_ids), EAGER_CHUNK_SIZE):
            chunk = owner_ids[offset:offset + EAGER_CHUNK_SIZE]
            stmt = select(t).where(
                t.owner_type == self.entity.translation_owner_type(),
                t.owner_id.in_(chunk),
                t.locale.in_(chain),
            )
            for row in self.session.scalars(stmt):
                rows_by_owner[row.owner_id].append(row)

        for owner_id, instance in by_id.items():
            instance.translation_index.seed(chain, rows_by_owner.get(owner_id, []))
        logger.debug(f"Eager-loaded translations for {len(owner_ids)} {self.entity.__name__} row(s) in {chain}")

    def __repr__(self) -> str:
        return f"<TranslationQuery({self.entity.__name__}, columns={self._columns}, eager={self._eager_chain})>"
