"""
polytext Locale Resolver — current locale and fallback chain resolution.

Chain resolution order (first that applies wins):
1. Caller-supplied override
2. Scoped chain on the active TranslationContext
3. Process-wide chain set with ``set_locales()``
4. ``locale_chain`` from translatable.yaml
5. Entity fallback policy: [current, *entity_fallback]
6. [current, fallback] from the context, else config defaults

An explicitly empty chain means "base value only". Never raises.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Union

from polytext.engine.config import get_config, import_string
from polytext.engine.context import TranslationContext, get_translation_context

logger = logging.getLogger("polytext.engine.resolver")

LocaleSpec = Union[str, Sequence[str], None]


def _dedupe(locales: Iterable[Optional[str]]) -> List[str]:
    """Drop None and repeated locales, keeping first occurrence order."""
    seen = set()
    result: List[str] = []
    for locale in locales:
        if locale and locale not in seen:
            seen.add(locale)
            result.append(locale)
    return result


class LocaleResolver:
    """
    Resolves the current locale and the ordered fallback chain.

    Usage:
        resolver = get_locale_resolver()
        resolver.set_locales(["fr", "de", "en"])
        resolver.resolve_fallback_chain()   # ["fr", "de", "en"]
        resolver.normalize("de")            # ["de"]
    """

    def __init__(self):
        self._locales: Optional[List[str]] = None
        self._default_locale: Optional[str] = None

    # ── Runtime state ──

    def set_locales(self, locales: Optional[Sequence[str]]) -> None:
        """Set (or with None, clear) the process-wide locale chain."""
        self._locales = None if locales is None else _dedupe(locales)
        logger.debug(f"Locale chain set: {self._locales}")

    def get_locales(self) -> List[str]:
        """The effective chain when no override or entity policy applies."""
        return self.resolve_fallback_chain()

    def set_default_locale(self, locale: Optional[str]) -> None:
        """Set (or clear) the runtime default locale."""
        self._default_locale = locale

    def default_locale(self) -> str:
        """Runtime default locale, else the configured one."""
        return self._default_locale or get_config().default_locale

    def fallback_locale(self, ctx: Optional[TranslationContext] = None) -> Optional[str]:
        """Ambient fallback locale, else the configured one."""
        ctx = ctx or get_translation_context()
        return ctx.fallback_locale or get_config().fallback_locale

    # ── Resolution ──

    def resolve(self, override: Optional[str] = None, ctx: Optional[TranslationContext] = None) -> str:
        """Resolve the current locale."""
        if override is not None:
            return override
        ctx = ctx or get_translation_context()
        if ctx.locale:
            return ctx.locale
        return self.default_locale()

    def configured_chain(self, ctx: Optional[TranslationContext] = None) -> Optional[List[str]]:
        """Explicit chain from context, runtime state or config; None if unset."""
        ctx = ctx or get_translation_context()
        if ctx.locales is not None:
            return _dedupe(ctx.locales)
        if self._locales is not None:
            return list(self._locales)
        configured = get_config().locale_chain
        if configured is not None:
            return _dedupe(configured)
        return None

    def resolve_fallback_chain(
        self,
        override: LocaleSpec = None,
        entity_fallback: LocaleSpec = None,
        ctx: Optional[TranslationContext] = None,
    ) -> List[str]:
        """Resolve the ordered locale chain to consult."""
        if override is not None:
            return [override] if isinstance(override, str) else list(override)

        ctx = ctx or get_translation_context()
        chain = self.configured_chain(ctx)
        if chain is not None:
            return chain

        current = self.resolve(ctx=ctx)
        if entity_fallback is not None:
            fallbacks = [entity_fallback] if isinstance(entity_fallback, str) else list(entity_fallback)
            return _dedupe([current, *fallbacks])
        return _dedupe([current, self.fallback_locale(ctx)])

    def normalize(self, locales: LocaleSpec = None, ctx: Optional[TranslationContext] = None) -> List[str]:
        """Wrap a single locale, pass lists through, resolve None to the chain."""
        if locales is None:
            return self.resolve_fallback_chain(ctx=ctx)
        if isinstance(locales, str):
            return [locales]
        return list(locales)


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_resolver: Optional[LocaleResolver] = None


def get_locale_resolver() -> LocaleResolver:
    """Get or create the process-wide resolver (class from config)."""
    global _resolver
    if _resolver is None:
        resolver_cls = import_string(get_config().resolver)
        _resolver = resolver_cls()
        logger.debug(f"Locale resolver created: {resolver_cls.__name__}")
    return _resolver


def reset_locale_resolver() -> None:
    """Drop the process-wide resolver and its runtime state."""
    global _resolver
    _resolver = None
