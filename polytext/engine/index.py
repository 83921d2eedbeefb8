"""
polytext Translation Index — per-instance in-memory translation cache.

Layout: ``locale → key → text``, filled one locale at a time the first time
a lookup needs it, or in bulk by an eager-loading query. Writes made through
the entity API patch the index in place, so a read right after a write
never needs a round trip.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

Loader = Callable[[List[str]], Iterable[Any]]

_MISSING = object()


class TranslationIndex:
    """
    Translation cache for one entity instance.

    Args:
        loader: ``loader(locales)`` returns the owner's translation rows
            (objects with ``locale``, ``key`` and ``text``) for those locales.
    """

    def __init__(self, loader: Loader):
        self._loader = loader
        self._map: Dict[str, Dict[str, str]] = {}
        self._loaded: Set[str] = set()
        # (key, chain) → text resolved by a query; None = nothing in chain
        self._resolved: Dict[Tuple[str, Tuple[str, ...]], Optional[str]] = {}

    # ── Loading ──

    def ensure_locale_loaded(self, locale: str) -> None:
        """Fetch a locale's rows once; entries patched in earlier win."""
        if locale in self._loaded:
            return
        fetched: Dict[str, str] = {}
        for row in self._loader([locale]):
            if row.locale == locale:
                fetched[row.key] = row.text
        fetched.update(self._map.get(locale, {}))
        self._map[locale] = fetched
        self._loaded.add(locale)

    def seed(self, locales: Iterable[str], rows: Iterable[Any]) -> None:
        """
        Replace whole locales with rows from an accurate bulk refetch and
        mark them loaded (locales without rows become loaded-and-empty).
        """
        locales = list(locales)
        fresh: Dict[str, Dict[str, str]] = {locale: {} for locale in locales}
        for row in rows:
            if row.locale in fresh:
                fresh[row.locale][row.key] = row.text
        self._map.update(fresh)
        self._loaded.update(locales)
        self._resolved.clear()

    def prime(self, key: str, chain: Sequence[str], text: Optional[str]) -> None:
        """Record the value a query already resolved for (key, chain)."""
        self._resolved[(key, tuple(chain))] = text

    # ── Reads ──

    def lookup(self, key: str, chain: Sequence[str]) -> Optional[str]:
        """First text found for ``key`` walking ``chain`` in order."""
        resolved = self._resolved.get((key, tuple(chain)), _MISSING)
        if resolved is not _MISSING:
            return resolved
        for locale in chain:
            self.ensure_locale_loaded(locale)
            text = self._map[locale].get(key)
            if text is not None:
                return text
        return None

    def get(self, locale: str, key: str) -> Optional[str]:
        """Exact (locale, key) lookup, loading the locale if needed."""
        self.ensure_locale_loaded(locale)
        return self._map[locale].get(key)

    def translations_for(self, key: str, locales: Optional[Iterable[str]] = None) -> Dict[str, str]:
        """``locale → text`` for ``key`` across the given (or all loaded) locales."""
        if locales is not None:
            wanted = list(locales)
            for locale in wanted:
                self.ensure_locale_loaded(locale)
        else:
            wanted = sorted(self._map)
        return {
            locale: self._map[locale][key]
            for locale in wanted
            if key in self._map.get(locale, {})
        }

    # ── Writes ──

    def patch(self, locale: str, key: str, text: Optional[str]) -> None:
        """Write through a stored value; None removes the entry."""
        entries = self._map.setdefault(locale, {})
        if text is None:
            entries.pop(key, None)
        else:
            entries[key] = text
        for cached in [k for k in self._resolved if k[0] == key]:
            del self._resolved[cached]

    def mark_loaded(self, locales: Iterable[str]) -> None:
        """Declare locales complete without fetching (e.g. brand new owner)."""
        for locale in locales:
            self._map.setdefault(locale, {})
            self._loaded.add(locale)

    def reset(self) -> None:
        """Drop everything; the next lookup refetches."""
        self._map.clear()
        self._loaded.clear()
        self._resolved.clear()

    # ── Introspection ──

    def is_loaded(self, locale: str) -> bool:
        return locale in self._loaded

    @property
    def loaded_locales(self) -> List[str]:
        return sorted(self._loaded)

    def __repr__(self) -> str:
        return f"<TranslationIndex(loaded={self.loaded_locales}, resolved={len(self._resolved)})>"
