"""Unit tests for polytext.db.translatable — field interception and the entity API."""

import pytest
from sqlalchemy import Column, Integer, String, func, select
from sqlalchemy.orm import DeclarativeBase

from polytext.db.models import Translation
from polytext.db.translatable import HasTranslations, translated
from polytext.engine.context import (
    TranslationContext,
    translation_context,
    use_locale,
    without_translations,
)
from polytext.engine.errors import TranslatableConfigError, TranslationStoreError
from polytext.engine.resolver import get_locale_resolver
from polytext.engine.store import TranslationStore
from tests.sample_models import Article, Note, Page


def _row_count(session, **criteria):
    stmt = select(func.count(Translation.id)).where(
        *[getattr(Translation, name) == value for name, value in criteria.items()]
    )
    return session.scalar(stmt)


class TestDeclaration:
    """Class-level contract and fail-fast configuration."""

    def test_translated_keys(self):
        assert Article.translated_keys() == frozenset({"title", "body"})
        assert Page.translated_keys() == frozenset({"name"})

    def test_base_attribute(self):
        assert Article.base_attribute("title") == "base_title"
        assert Page.base_attribute("name") == "name"

    def test_owner_type_defaults_to_table_name(self):
        assert Article.translation_owner_type() == "articles"
        assert Page.translation_owner_type() == "page"

    def test_class_access_returns_base_column(self):
        assert Article.title is Article.base_title

    def test_translation_rules(self):
        assert Article.translation_rules("title") is not None
        assert Article.translation_rules("body") is None

    def test_no_translatable_fields_rejected(self):
        class LocalBase(DeclarativeBase):
            pass

        with pytest.raises(TranslatableConfigError, match="no translatable fields"):
            class Empty(HasTranslations, LocalBase):
                __tablename__ = "empty_entities"
                id = Column(Integer, primary_key=True)

    def test_unmapped_base_attribute_rejected(self):
        class LocalBase(DeclarativeBase):
            pass

        with pytest.raises(TranslatableConfigError) as exc_info:
            class Broken(HasTranslations, LocalBase):
                __tablename__ = "broken_entities"
                id = Column(Integer, primary_key=True)
                title = translated("missing_column")

        assert exc_info.value.entity == "Broken"
        assert exc_info.value.key == "title"

    def test_composite_primary_key_rejected(self):
        class LocalBase(DeclarativeBase):
            pass

        with pytest.raises(TranslatableConfigError, match="single-column primary key"):
            class Composite(HasTranslations, LocalBase):
                __tablename__ = "composite_entities"
                a = Column(Integer, primary_key=True)
                b = Column(Integer, primary_key=True)
                label = Column(String(20))
                __translatable__ = ("label",)


class TestReads:
    """Fallback-chain reads through the instance index."""

    def test_chain_walks_locales_in_order(self, session, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")
        article.set_translation("title", "Hello", "en")

        get_locale_resolver().set_locales(["fr", "de", "en"])
        assert article.title == "Hallo"

        article.delete_translation("title", "de")
        assert article.title == "Hello"

    def test_base_value_when_chain_has_nothing(self, make_article):
        article = make_article(title="Base")
        with use_locale("fr", fallback_locale="it"):
            assert article.title == "Base"

    def test_none_when_nothing_at_all(self, make_article):
        article = make_article()
        assert article.title is None

    def test_explicit_locales_override_chain(self, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")
        article.set_translation("title", "Salut", "fr")

        with use_locale("de"):
            assert article.get_translated("title", locales="fr") == "Salut"
            assert article.get_translated("title", locales=["it", "de"]) == "Hallo"
            assert article.get_translated("title", locales=[]) == "Base"

    def test_entity_fallback_policy(self, session):
        page = Page(name="Startseite-Basis")
        session.add(page)
        session.flush()
        page.set_translation("name", "Startseite", "de")

        with use_locale("fr"):
            assert page.translation_locale_chain() == ["fr", "de"]
            assert page.get_translated("name") == "Startseite"
            # keys without an accessor are not intercepted
            assert page.name == "Startseite-Basis"

    def test_reads_are_cached_per_locale(self, make_article, statements):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")
        statements.clear()

        with use_locale("de"):
            assert article.title == "Hallo"
            assert article.body is None
            count = len(statements)
            assert article.title == "Hallo"
            assert article.body is None
        assert count > 0
        assert len(statements) == count

    def test_non_translatable_key_reads_attribute(self, make_article):
        article = make_article(slug="plain")
        assert article.get_translated("slug") == "plain"

    def test_index_reset_on_refresh(self, session, make_article):
        article = make_article(title="Base")
        with use_locale("de"):
            assert article.title == "Base"

        store = TranslationStore(session)
        store.upsert(article, "title", "de", "Extern")
        session.refresh(article)

        with use_locale("de"):
            assert article.title == "Extern"


class TestWrites:
    """Write routing, idempotency and the empty-value policy."""

    def test_write_then_read_same_locale(self, session, make_article):
        article = make_article(title="Base")
        with use_locale("de"):
            article.title = "Hallo"
            assert article.title == "Hallo"

        assert article.base_title == "Base"
        assert TranslationStore(session).find(article, "title", "de") == "Hallo"

    def test_write_targets_first_chain_locale(self, session, make_article):
        article = make_article()
        get_locale_resolver().set_locales(["fr", "de"])
        article.title = "Bonjour"
        assert TranslationStore(session).find(article, "title", "fr") == "Bonjour"

    def test_upsert_is_idempotent(self, session, make_article):
        article = make_article()
        article.set_translation("title", "Eins", "de")
        article.set_translation("title", "Zwei", "de")

        assert _row_count(session, key="title", locale="de") == 1
        assert article.get_translation("title", "de") == "Zwei"
        assert article.get_all_translations("title") == {"de": "Zwei"}

    def test_empty_value_deletes_row(self, session, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")
        article.set_translation("title", "  ", "de")

        assert _row_count(session, key="title", locale="de") == 0
        assert article.has_translation("title", "de") is False
        with use_locale("de"):
            assert article.title == "Base"

    def test_empty_value_kept_with_keep_policy(self, session, make_article, config):
        config(empty_value_policy="keep")
        article = make_article(title="Base")
        article.set_translation("title", "", "de")

        record = article.get_translation_record("title", "de")
        assert record is not None
        assert record.text == ""

    def test_delete_translation(self, make_article):
        article = make_article()
        article.set_translation("body", "Text", "de")
        assert article.delete_translation("body", "de") is True
        assert article.delete_translation("body", "de") is False
        assert article.get_translations("body") == []

    def test_default_locale_shared_by_explicit_api(self, make_article):
        article = make_article(title="Base")
        get_locale_resolver().set_locales(["fr", "de"])

        with use_locale("en"):
            article.set_translation("title", "Bonjour")
            assert article.has_translation("title") is True
            assert article.get_translation("title") == "Bonjour"
            assert article.get_translation_record("title").locale == "fr"
            assert article.delete_translation("title") is True
            assert article.has_translation("title") is False

    def test_get_translations_filters(self, make_article):
        article = make_article()
        article.set_translation("title", "Hallo", "de")
        article.set_translation("title", "Hello", "en")
        article.set_translation("body", "Text", "de")

        assert len(article.get_translations()) == 3
        assert [t.locale for t in article.get_translations("title")] == ["de", "en"]
        assert [t.key for t in article.get_translations(locale="de")] == ["title", "body"]

    def test_relationship_lists_rows(self, session, make_article):
        article = make_article()
        article.set_translation("title", "Hallo", "de")
        session.expire(article, ["translations"])
        assert [t.text for t in article.translations] == ["Hallo"]

    def test_detached_entity_write_raises(self, session, make_article):
        article = make_article()
        session.expunge(article)
        with pytest.raises(TranslationStoreError) as exc_info:
            article.set_translation("title", "Hallo", "de")
        assert exc_info.value.operation == "upsert"

    def test_non_translatable_key_written_to_attribute(self, make_article):
        article = make_article(slug="old")
        article.set_translated("slug", "new")
        assert article.slug == "new"

    def test_default_locale_on_model(self, session, make_article, config):
        config(default_locale_on_model=True, default_locale="en")
        article = make_article(title="Base")

        with use_locale("en"):
            article.title = "English"
        assert article.base_title == "English"
        assert _row_count(session) == 0

        article.set_translation("title", "Deutsch", "de")
        with use_locale("de"):
            assert article.title == "Deutsch"
        with use_locale("fr", fallback_locale="en"):
            assert article.title == "English"


class TestDeferredWrites:
    """Writes on unsaved entities replay after their INSERT."""

    def test_two_unsaved_instances_keep_their_writes(self, session):
        first = Article(slug="first", base_title="A")
        second = Article(slug="second", base_title="B")

        with use_locale("de"):
            first.title = "Erster"
            second.title = "Zweiter"
            assert first.title == "Erster"
            assert second.title == "Zweiter"

        session.add_all([first, second])
        session.flush()

        store = TranslationStore(session)
        assert store.find(first, "title", "de") == "Erster"
        assert store.find(second, "title", "de") == "Zweiter"
        assert first.pending_translations == {}
        assert second.pending_translations == {}

    def test_replay_runs_once(self, session):
        article = Article(slug="once")
        article.set_translation("title", "Einmal", "de")
        session.add(article)
        session.flush()

        article.slug = "changed"
        session.flush()
        session.commit()

        assert _row_count(session, key="title", locale="de") == 1
        with use_locale("de"):
            assert article.title == "Einmal"

    def test_constructor_keyword_is_deferred(self, session):
        with use_locale("de"):
            article = Article(slug="ctor", title="Titel")
        assert article.base_title is None
        assert article.pending_translations == {("de", "title"): "Titel"}

        session.add(article)
        session.flush()
        assert TranslationStore(session).find(article, "title", "de") == "Titel"

    def test_empty_deferred_value_is_skipped(self, session):
        article = Article(slug="empty")
        article.set_translation("title", "", "de")
        session.add(article)
        session.flush()
        assert _row_count(session) == 0

    def test_deferred_delete_drops_pending(self, session):
        article = Article(slug="drop")
        article.set_translation("title", "Weg", "de")
        assert article.delete_translation("title", "de") is True
        assert article.get_all_translations("title") == {}

        session.add(article)
        session.flush()
        assert _row_count(session) == 0

    def test_unsaved_reads_have_no_rows(self):
        article = Article(slug="new", base_title="Base")
        assert article.get_translations() == []
        assert article.get_translation_record("title", "de") is None
        assert article.title == "Base"


class TestBypass:
    """Scoped, instance and explicit-context bypass."""

    def test_scoped_bypass_reads_and_writes_base(self, session, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")

        with use_locale("de"):
            with without_translations():
                assert article.title == "Base"
                article.title = "Roh"
            assert article.title == "Hallo"

        assert article.base_title == "Roh"
        assert _row_count(session, key="title") == 1

    def test_instance_bypass(self, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")

        article.bypass_translations()
        with use_locale("de"):
            assert article.title == "Base"
            article.bypass_translations(False)
            assert article.title == "Hallo"

    def test_explicit_context(self, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "de")

        assert article.get_translated("title", context=TranslationContext(locale="de")) == "Hallo"
        assert article.get_translated("title", context=TranslationContext(locale="de", bypass=True)) == "Base"

    def test_scoped_chain(self, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hola", "es")
        with translation_context(locales=["it", "es"]):
            assert article.title == "Hola"

    def test_auto_translate_disabled(self, session):
        note = Note(base_text="Raw")
        session.add(note)
        session.flush()

        note.text = "Direct"
        assert note.base_text == "Direct"
        assert _row_count(session) == 0

        note.set_translation("text", "Übersetzt", "de")
        with use_locale("de"):
            assert note.text == "Direct"
            assert note.get_translated("text") == "Übersetzt"

    def test_untranslated(self, make_article):
        article = make_article(title="Base")
        article.set_translation("title", "Hallo", "en")
        assert article.title == "Hallo"
        assert article.get_untranslated("title") == "Base"
