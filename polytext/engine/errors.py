"""
polytext Error Hierarchy — Structured exceptions for translation failures.

All errors carry keyword context and serialize to JSON so they can be
written to the structured translation logs unchanged.

Hierarchy:
    PolytextError
    ├── TranslatableConfigError         — Entity contract / configuration mismatch
    ├── TranslationValidationError      — Widget payload failed validation
    ├── TranslationStoreError           — Translation row operation impossible
    └── TranslationObjectNotFoundError  — Owner type not found in the registry

Database errors (IntegrityError, OperationalError, …) raised by SQLAlchemy
are never wrapped; they reach the caller as-is.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class PolytextError(Exception):
    """
    Base error for all polytext failures.
    All context is kept as keyword data and serializable to JSON.
    """

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.owner_type: Optional[str] = context.get("owner_type")
        self.owner_id: Optional[Any] = context.get("owner_id")
        self.key: Optional[str] = context.get("key")
        self.error_type: str = self.__class__.__name__
        self.context: Dict[str, Any] = context
        self.timestamp: str = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize error to a JSON-compatible dict for logging."""
        return {
            "error_type": self.error_type,
            "message": self.message,
            "owner_type": self.owner_type,
            "owner_id": self.owner_id,
            "key": self.key,
            "timestamp": self.timestamp,
            "context": {
                k: str(v) for k, v in self.context.items()
                if k not in ("owner_type", "owner_id", "key")
            },
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), default=str)

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        if self.owner_type:
            parts.append(f"owner={self.owner_type}:{self.owner_id}")
        if self.key:
            parts.append(f"key={self.key}")
        return " | ".join(parts)


class TranslatableConfigError(PolytextError):
    """
    Configuration error — an entity does not implement the translatable
    contract, or translatable.yaml holds an invalid value.
    Raised at class creation / first use, never per read.
    """

    def __init__(self, message: str, **context: Any):
        self.entity: Optional[str] = context.get("entity")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["entity"] = self.entity
        return d


class TranslationValidationError(PolytextError):
    """
    A translation payload failed validation.
    ``validation_errors`` holds one ``{"locale", "message"}`` dict per
    failing locale, so callers can show every message at once.
    """

    def __init__(self, message: str, **context: Any):
        self.validation_errors: List[Dict[str, Any]] = context.get("validation_errors") or []
        super().__init__(message, **context)

    @property
    def locales(self) -> List[str]:
        """Locales that failed, in report order."""
        return [e["locale"] for e in self.validation_errors if e.get("locale")]

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["validation_errors"] = self.validation_errors
        return d


class TranslationStoreError(PolytextError):
    """A translation row operation cannot be performed (e.g. detached owner)."""

    def __init__(self, message: str, **context: Any):
        self.locale: Optional[str] = context.get("locale")
        self.operation: Optional[str] = context.get("operation")
        super().__init__(message, **context)

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["locale"] = self.locale
        d["operation"] = self.operation
        return d


class TranslationObjectNotFoundError(PolytextError):
    """Owner type not found in the translatable registry."""
    pass
