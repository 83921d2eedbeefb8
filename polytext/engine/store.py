"""
polytext Translation Store — persistence for the translation side table.

Every operation is scoped to one owner (an ``OwnerRef`` or a translatable
entity). Bulk, cross-owner reads belong to ``polytext.db.query``.

Upsert strategy:
- PostgreSQL / SQLite: one atomic ``INSERT … ON CONFLICT DO UPDATE`` on the
  (locale, key, owner_type, owner_id) unique constraint.
- Other dialects: update the existing row, else insert inside a SAVEPOINT;
  if a concurrent writer won the insert (IntegrityError), update its row.

Empty text follows ``empty_value_policy``: "delete" removes the row,
"keep" stores an empty string. Database errors propagate unmodified.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from polytext.db.base import utcnow
from polytext.db.models import KEY_MAX_LENGTH, LOCALE_MAX_LENGTH, OwnerRef, get_translation_model
from polytext.engine.config import get_config
from polytext.engine.errors import TranslationStoreError
from polytext.engine.logging import emit, log_translation_write

logger = logging.getLogger("polytext.engine.store")

UPSERT_DIALECTS = ("postgresql", "sqlite")

UNIQUE_COLUMNS = ("locale", "key", "owner_type", "owner_id")

# (locale, key) → text
PendingWrites = Dict[Tuple[str, str], Optional[str]]


def is_empty_text(text: Optional[str]) -> bool:
    return text is None or (isinstance(text, str) and not text.strip())


def build_upsert(dialect_name: str, table: Any, values: Dict[str, Any]):
    """Atomic insert-or-update statement for dialects with ON CONFLICT."""
    if dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert as dialect_insert
    elif dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert as dialect_insert
    else:
        raise ValueError(f"No ON CONFLICT upsert for dialect '{dialect_name}'")

    stmt = dialect_insert(table).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=list(UNIQUE_COLUMNS),
        set_={"text": stmt.excluded.text, "updated_at": utcnow()},
    )


def _check_key_locale(owner: OwnerRef, key: str, locale: str, operation: str) -> None:
    if not key or len(key) > KEY_MAX_LENGTH:
        raise TranslationStoreError(
            f"Translation key must be 1-{KEY_MAX_LENGTH} characters: '{key}'",
            owner_type=owner.owner_type, owner_id=owner.owner_id,
            key=key, locale=locale, operation=operation,
        )
    if not locale or len(locale) > LOCALE_MAX_LENGTH:
        raise TranslationStoreError(
            f"Locale must be 1-{LOCALE_MAX_LENGTH} characters: '{locale}'",
            owner_type=owner.owner_type, owner_id=owner.owner_id,
            key=key, locale=locale, operation=operation,
        )


class TranslationStore:
    """
    Create / read / update / delete translation rows for one owner at a time.

    Usage:
        store = TranslationStore(session)
        store.upsert(article, "title", "de", "Hallo")
        store.find(article, "title", "de")          # "Hallo"
        store.find_many(article, locales=["de"])    # [<Translation …>]
    """

    def __init__(
        self,
        session: Session,
        model: Optional[type] = None,
        empty_value_policy: Optional[str] = None,
    ):
        self.session = session
        self.model = model or get_translation_model()
        self.empty_value_policy = empty_value_policy or get_config().empty_value_policy

    # ── Query helpers ──

    def _criteria(self, owner: OwnerRef, key: Optional[str] = None, locale: Optional[str] = None) -> List[Any]:
        m = self.model
        crit = [m.owner_type == owner.owner_type, m.owner_id == owner.owner_id]
        if key is not None:
            crit.append(m.key == key)
        if locale is not None:
            crit.append(m.locale == locale)
        return crit

    # ── Reads ──

    def find_record(
        self,
        owner: Union[OwnerRef, Any],
        key: str,
        locale: str,
        refresh: bool = False,
    ) -> Optional[Any]:
        """The translation row for (owner, key, locale), or None."""
        owner = OwnerRef.of(owner)
        stmt = select(self.model).where(*self._criteria(owner, key, locale))
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return self.session.scalars(stmt).first()

    def find(self, owner: Union[OwnerRef, Any], key: str, locale: str) -> Optional[str]:
        """Direct text lookup."""
        owner = OwnerRef.of(owner)
        return self.session.scalar(
            select(self.model.text).where(*self._criteria(owner, key, locale))
        )

    def find_many(
        self,
        owner: Union[OwnerRef, Any],
        keys: Optional[Iterable[str]] = None,
        locales: Optional[Iterable[str]] = None,
    ) -> List[Any]:
        """Rows for an owner, optionally filtered by keys and locales."""
        owner = OwnerRef.of(owner)
        m = self.model
        stmt = select(m).where(*self._criteria(owner))
        if keys is not None:
            stmt = stmt.where(m.key.in_(list(keys)))
        if locales is not None:
            stmt = stmt.where(m.locale.in_(list(locales)))
        return list(self.session.scalars(stmt.order_by(m.id)).all())

    def exists_for(self, owner: Union[OwnerRef, Any], key: str, locale: str) -> bool:
        owner = OwnerRef.of(owner)
        stmt = select(self.model.id).where(*self._criteria(owner, key, locale)).limit(1)
        return self.session.scalar(stmt) is not None

    # ── Writes ──

    def upsert(self, owner: Union[OwnerRef, Any], key: str, locale: str, text: Optional[str]) -> Optional[Any]:
        """
        Insert or update the (owner, key, locale) row.

        Returns:
            The stored row, or None when an empty value deleted it.
        """
        owner = OwnerRef.of(owner)
        _check_key_locale(owner, key, locale, "upsert")

        if is_empty_text(text):
            if self.empty_value_policy == "delete":
                self.delete(owner, key, locale)
                return None
            text = ""

        start = time.perf_counter()
        dialect = self.session.get_bind().dialect.name
        if dialect in UPSERT_DIALECTS:
            values = {
                "owner_type": owner.owner_type,
                "owner_id": owner.owner_id,
                "key": key,
                "locale": locale,
                "text": text,
            }
            self.session.execute(build_upsert(dialect, self.model.__table__, values))
            record = self.find_record(owner, key, locale, refresh=True)
        else:
            record = self._upsert_orm(owner, key, locale, text)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Upserted translation {owner}.{key}[{locale}]")
        emit(log_translation_write("upsert", owner.owner_type, owner.owner_id, key, locale, duration_ms))
        return record

    def _upsert_orm(self, owner: OwnerRef, key: str, locale: str, text: str) -> Any:
        record = self.find_record(owner, key, locale)
        if record is not None:
            record.text = text
            self.session.flush()
            return record

        try:
            with self.session.begin_nested():
                record = self.model(
                    owner_type=owner.owner_type,
                    owner_id=owner.owner_id,
                    key=key,
                    locale=locale,
                    text=text,
                )
                self.session.add(record)
        except IntegrityError:
            # A concurrent insert won the unique constraint; update its row.
            record = self.find_record(owner, key, locale, refresh=True)
            if record is None:
                raise
            logger.info(f"Insert race on {owner}.{key}[{locale}], updating existing row")
            record.text = text
            self.session.flush()
        return record

    def delete(self, owner: Union[OwnerRef, Any], key: str, locale: str) -> bool:
        """Delete the (owner, key, locale) row. Returns True if a row was removed."""
        owner = OwnerRef.of(owner)
        result = self.session.execute(
            delete(self.model).where(*self._criteria(owner, key, locale))
        )
        removed = bool(result.rowcount)
        if removed:
            logger.debug(f"Deleted translation {owner}.{key}[{locale}]")
            emit(log_translation_write("delete", owner.owner_type, owner.owner_id, key, locale))
        return removed

    # ── Deferred writes ──

    def replay(self, connection: Connection, owner: OwnerRef, pending: PendingWrites) -> int:
        """Write pending translations for a just-inserted owner on the flush connection."""
        return replay_pending(connection, owner, pending, self.model, self.empty_value_policy)


def replay_pending(
    connection: Connection,
    owner: OwnerRef,
    pending: PendingWrites,
    model: Optional[type] = None,
    empty_value_policy: Optional[str] = None,
) -> int:
    """
    Core-level write of deferred translations, usable inside a flush
    (mapper ``after_insert``) where the ORM session must not be touched.

    Returns:
        Number of rows written.
    """
    model = model or get_translation_model()
    policy = empty_value_policy or get_config().empty_value_policy
    table = model.__table__
    dialect = connection.dialect.name

    written = 0
    for (locale, key), text in pending.items():
        _check_key_locale(owner, key, locale, "replay")
        if is_empty_text(text):
            if policy == "delete":
                continue
            text = ""
        values = {
            "owner_type": owner.owner_type,
            "owner_id": owner.owner_id,
            "key": key,
            "locale": locale,
            "text": text,
        }
        if dialect in UPSERT_DIALECTS:
            connection.execute(build_upsert(dialect, table, values))
        else:
            connection.execute(insert(table).values(**values))
        written += 1
    return written
