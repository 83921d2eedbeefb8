"""polytext UI — payload boundary for translatable form widgets."""

from polytext.ui.field import (
    TranslatableField,
    fill_translations,
    parse_payload,
    resolve_field_value,
    validate_payload,
)

__all__ = [
    "TranslatableField",
    "fill_translations",
    "parse_payload",
    "resolve_field_value",
    "validate_payload",
]
