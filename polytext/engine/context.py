"""
polytext Translation Context — ambient locale and bypass state.

One TranslationContext per request/task, held in a ContextVar so that
concurrent requests (threads or asyncio tasks) never see each other's
locale or bypass mode. Host middleware sets it; reads and writes consult
it through the LocaleResolver.

Usage:
    from polytext.engine.context import use_locale, without_translations

    with use_locale("de"):
        article.title            # German, then fallback chain

    with without_translations():
        article.title            # raw base column value
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from typing import Any, Dict, Generator, List, Optional

current_translation_context: ContextVar[Optional["TranslationContext"]] = ContextVar(
    "translation_context", default=None
)


@dataclass(frozen=True)
class TranslationContext:
    """
    Per-request translation state.

    ``locale`` / ``fallback_locale`` stand in for the host's current and
    fallback locale. ``locales`` is a scoped locale chain that overrides
    the resolver's process-wide one. ``bypass`` disables all interception.
    """

    locale: Optional[str] = None
    fallback_locale: Optional[str] = None
    locales: Optional[List[str]] = None
    bypass: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging."""
        return {
            "locale": self.locale,
            "fallback_locale": self.fallback_locale,
            "locales": self.locales,
            "bypass": self.bypass,
        }


_EMPTY_CONTEXT = TranslationContext()


def set_translation_context(ctx: Optional[TranslationContext]) -> None:
    """Set the translation context for the current thread/task."""
    current_translation_context.set(ctx)


def get_translation_context() -> TranslationContext:
    """Get the current translation context (an empty one if never set)."""
    return current_translation_context.get() or _EMPTY_CONTEXT


def clear_translation_context() -> None:
    """Clear the translation context (e.g. at request end)."""
    current_translation_context.set(None)


def set_locale(locale: str) -> None:
    """Set the current locale, keeping the rest of the context."""
    set_translation_context(replace(get_translation_context(), locale=locale))


@contextmanager
def translation_context(**changes: Any) -> Generator[TranslationContext, None, None]:
    """
    Temporarily apply ``changes`` on top of the active context.

    Accepts the TranslationContext fields: locale, fallback_locale,
    locales, bypass.
    """
    ctx = replace(get_translation_context(), **changes)
    token = current_translation_context.set(ctx)
    try:
        yield ctx
    finally:
        current_translation_context.reset(token)


@contextmanager
def use_locale(locale: str, fallback_locale: Optional[str] = None) -> Generator[TranslationContext, None, None]:
    """Scope the current (and optionally fallback) locale."""
    changes: Dict[str, Any] = {"locale": locale}
    if fallback_locale is not None:
        changes["fallback_locale"] = fallback_locale
    with translation_context(**changes) as ctx:
        yield ctx


@contextmanager
def without_translations() -> Generator[TranslationContext, None, None]:
    """Bypass translation interception for the duration of the block."""
    with translation_context(bypass=True) as ctx:
        yield ctx


def is_bypassed(ctx: Optional[TranslationContext] = None) -> bool:
    """Whether interception is disabled for the explicit or ambient context."""
    return (ctx or get_translation_context()).bypass
