"""polytext Engine — Config, context, locale resolution, index, registry, logging."""

from polytext.engine.config import TranslatableConfig, get_config, load_config  # noqa: F401
from polytext.engine.context import TranslationContext, use_locale, without_translations  # noqa: F401
from polytext.engine.index import TranslationIndex  # noqa: F401
from polytext.engine.registry import TranslatableRegistry, translatable_registry  # noqa: F401
from polytext.engine.resolver import LocaleResolver, get_locale_resolver  # noqa: F401

__all__ = [
    "TranslatableConfig",
    "get_config",
    "load_config",
    "TranslationContext",
    "use_locale",
    "without_translations",
    "TranslationIndex",
    "TranslatableRegistry",
    "translatable_registry",
    "LocaleResolver",
    "get_locale_resolver",
]
