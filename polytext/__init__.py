"""
polytext — Per-field translations for SQLAlchemy models.

Translations live in one polymorphic side table (``translatable``) keyed by
owner, field key and locale. Entities opt in with ``HasTranslations`` and
``translated`` accessors; reads walk a locale fallback chain and fall back
to the base column.

    from polytext import HasTranslations, translated, use_locale

    class Article(HasTranslations, Base):
        __tablename__ = "articles"
        id = Column(Integer, primary_key=True)
        base_title = Column("title", String(200))
        title = translated("base_title")

    with use_locale("de"):
        article.title = "Hallo"
"""

__version__ = "1.0.0"
__all__ = ["engine", "db", "ui", "cli"]

from polytext.db.models import OwnerRef, Translation  # noqa: E402,F401
from polytext.db.query import TranslationQuery  # noqa: E402,F401
from polytext.db.translatable import HasTranslations, translated  # noqa: E402,F401
from polytext.engine.context import (  # noqa: E402,F401
    TranslationContext,
    set_translation_context,
    translation_context,
    use_locale,
    without_translations,
)
from polytext.engine.resolver import LocaleResolver, get_locale_resolver  # noqa: E402,F401
