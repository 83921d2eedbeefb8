"""
polytext Translatable Field — payload boundary for multi-locale form widgets.

The widget edits one field across several locales and exchanges a
``{locale: text}`` map (as a mapping or its JSON string):

    field = TranslatableField(key="title", locales=["en", "de"], rules=Title)
    field.resolve(article)                      # {"en": "Hello", "de": "Hallo"}
    field.fill(article, '{"de": "Guten Tag", "en": ""}')

Validation runs per locale with a pydantic TypeAdapter built from the
field rules; every failing locale is reported in one
TranslationValidationError before anything is written.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator
from sqlalchemy.orm import object_session

from polytext.db.models import LOCALE_MAX_LENGTH
from polytext.db.translatable import HasTranslations
from polytext.engine.errors import TranslatableConfigError, TranslationValidationError

logger = logging.getLogger("polytext.ui.field")

Payload = Dict[str, Optional[str]]

INPUT_TYPES = ("text", "textarea", "markdown")

_payload_adapter = TypeAdapter(Payload)


def _require_translatable(entity: Any) -> None:
    if not isinstance(entity, HasTranslations):
        raise TranslatableConfigError(
            f"{type(entity).__name__} must implement HasTranslations",
            entity=type(entity).__name__,
        )


def resolve_field_value(entity: Any, key: str) -> Optional[Payload]:
    """Stored translations of ``key`` as ``{locale: text}``; None when empty."""
    _require_translatable(entity)
    values = entity.get_all_translations(key)
    return values or None


def parse_payload(value: Union[str, Mapping[str, Any], None]) -> Payload:
    """Decode a widget payload into a ``{locale: text | None}`` map."""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise TranslationValidationError(f"Translation payload is not valid JSON: {e}") from e

    if not value:
        raise TranslationValidationError("Translation payload is empty")
    try:
        return _payload_adapter.validate_python(value)
    except ValidationError as e:
        raise TranslationValidationError(
            "Translation payload must map locales to text",
            validation_errors=[
                {"locale": str(err["loc"][0]) if err["loc"] else None, "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e


def validate_payload(
    payload: Payload,
    rules: Any = None,
    locales: Optional[Sequence[str]] = None,
    key: Optional[str] = None,
) -> Payload:
    """
    Validate every locale value against ``rules`` (a type usable by
    pydantic, e.g. ``Annotated[str, StringConstraints(max_length=80)]``).

    ``locales`` are required slots: a missing one is validated as None, so
    non-optional rules reject it. Locale identifiers must fit the
    translation table's locale column.

    Raises:
        TranslationValidationError: with one ``{"locale", "message"}`` per
            failing locale.
    """
    adapter = TypeAdapter(rules if rules is not None else Optional[str])

    slots: List[str] = list(locales or [])
    slots += [locale for locale in payload if locale not in slots]

    validated: Payload = {}
    errors: List[Dict[str, Any]] = []
    for locale in slots:
        if not locale or len(locale) > LOCALE_MAX_LENGTH:
            errors.append({
                "locale": locale,
                "message": f"Locale must be 1-{LOCALE_MAX_LENGTH} characters",
            })
            continue
        try:
            validated[locale] = adapter.validate_python(payload.get(locale))
        except ValidationError as e:
            errors.append({"locale": locale, "message": e.errors()[0]["msg"]})

    if errors:
        raise TranslationValidationError(
            f"Invalid translations for {', '.join(err['locale'] for err in errors)}",
            key=key,
            validation_errors=errors,
        )
    return validated


def fill_translations(
    entity: Any,
    key: str,
    payload: Union[str, Mapping[str, Any]],
    rules: Any = None,
    locales: Optional[Sequence[str]] = None,
) -> Payload:
    """
    Validate a widget payload, then write it locale by locale (deferred on
    unsaved entities). Empty values follow ``empty_value_policy``.

    Persisted entities are written inside a savepoint: a store error on any
    locale rolls back the locales written before it.

    Returns:
        The validated payload.
    """
    _require_translatable(entity)
    if rules is None:
        rules = type(entity).translation_rules(key)

    values = validate_payload(parse_payload(payload), rules=rules, locales=locales, key=key)

    session = object_session(entity)
    if session is None or entity.translation_owner_id() is None:
        _write_values(entity, key, values)
    else:
        try:
            with session.begin_nested():
                _write_values(entity, key, values)
        except Exception:
            # index holds patches from the rolled back locales
            entity.translation_index.reset()
            raise

    logger.debug(f"Filled {key} on {type(entity).__name__} for {sorted(values)}")
    return values


def _write_values(entity: Any, key: str, values: Payload) -> None:
    for locale, text in values.items():
        entity.set_translation(key, text, locale)


class TranslatableField(BaseModel):
    """Widget description of one translatable field."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    key: str
    locales: List[str] = []
    rules: Any = None
    input_type: str = "text"

    @field_validator("input_type")
    @classmethod
    def validate_input_type(cls, v: str) -> str:
        if v not in INPUT_TYPES:
            raise ValueError(f"input_type must be one of {INPUT_TYPES}, got '{v}'")
        return v

    def resolve(self, entity: Any) -> Optional[Payload]:
        return resolve_field_value(entity, self.key)

    def validate_value(self, payload: Union[str, Mapping[str, Any]]) -> Payload:
        return validate_payload(parse_payload(payload), self.rules, self.locales, key=self.key)

    def fill(self, entity: Any, payload: Union[str, Mapping[str, Any]]) -> Payload:
        return fill_translations(entity, self.key, payload, rules=self.rules, locales=self.locales)

    def to_dict(self) -> Dict[str, Any]:
        """Serialized widget metadata."""
        return {"key": self.key, "locales": self.locales, "input_type": self.input_type}
