# app/schemas.py
import re
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ServiceValidationError

# Plain decimal: digits with an optional fraction, no exponent, separators or inf/nan.
# A sign is let through so negatives fail the range check with a clear message.
_DECIMAL_RE = re.compile(r"[+-]?([0-9]+(\.[0-9]*)?|\.[0-9]+)")

# --- List Filter ---
class StatusFilter(str, Enum):
    """Tri-state filter over ``is_active``."""
    all = "all"
    active = "true"
    inactive = "false"

    @classmethod
    def parse(cls, value: str | None) -> "StatusFilter":
        """Lenient parse for query strings: anything unknown means no filter."""
        try:
            return cls(value) if value else cls.all
        except ValueError:
            return cls.all

# --- Form Schema (parsed and validated input for create/update) ---
class ServiceForm(BaseModel):
    name: str = Field(..., description="Display name of the service")
    description: str = Field(..., description="Free-text description")
    price: float = Field(..., ge=0, allow_inf_nan=False, description="Non-negative price")
    is_active: bool = True
    is_featured: bool = False

    @field_validator("name", "description", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        if value is None or not str(value).strip():
            raise ValueError("must not be empty")
        return str(value).strip()

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> float:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value) + 0.0
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("is required")
        if not _DECIMAL_RE.fullmatch(text):
            raise ValueError("must be a valid number")
        # + 0.0 turns -0.0 into 0.0
        return float(text) + 0.0

# Form keys as posted by the dashboard, mapped onto ServiceForm fields.
FORM_FIELDS = {
    "name": "name",
    "description": "description",
    "price": "price",
    "isActive": "is_active",
    "isFeatured": "is_featured",
}

_FLAG_DEFAULTS = {"is_active": True, "is_featured": False}


def _parse_flag(raw: Any, default: bool) -> bool:
    """Only the literals "true"/"false" count; anything else keeps the default."""
    if isinstance(raw, bool):
        return raw
    if raw == "true":
        return True
    if raw == "false":
        return False
    return default


def parse_service_form(data: Mapping[str, Any]) -> ServiceForm:
    """Parse untyped form text into a validated ServiceForm.

    Raises ServiceValidationError keyed by the posted field name.
    """
    values = {field: data.get(key) for key, field in FORM_FIELDS.items()}
    for field, default in _FLAG_DEFAULTS.items():
        values[field] = _parse_flag(values[field], default)
    try:
        return ServiceForm(**values)
    except ValidationError as e:
        reverse = {field: key for key, field in FORM_FIELDS.items()}
        errors = {}
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "form"
            message = err["msg"].removeprefix("Value error, ")
            errors.setdefault(reverse.get(field, field), message)
        raise ServiceValidationError(errors) from e

# --- Read Schema (used when returning data from DB) ---
class Service(BaseModel):
    id: str
    name: str
    description: str
    price: float
    is_active: bool = Field(serialization_alias="isActive")
    is_featured: bool = Field(serialization_alias="isFeatured")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    model_config = ConfigDict(from_attributes=True)

# --- Operation Result ---
class ServiceResult(BaseModel):
    """Outcome of a gateway operation: the record, or a failure description."""
    success: bool
    service: Service | None = None
    error: str | None = None
    error_kind: str | None = Field(default=None, serialization_alias="errorKind")
    field_errors: dict[str, str] = Field(default_factory=dict, serialization_alias="fieldErrors")

    @classmethod
    def ok(cls, service: Service | None = None) -> "ServiceResult":
        return cls(success=True, service=service)

    @classmethod
    def fail(cls, kind: str, message: str, field_errors: dict[str, str] | None = None) -> "ServiceResult":
        return cls(success=False, error=message, error_kind=kind, field_errors=field_errors or {})
