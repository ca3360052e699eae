from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from shared.errors import InvalidRequest

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
UTC_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?Z$")

_MISSING = object()

# Largest value a BIGINT column can hold.
MAX_ID = 2**63 - 1

# Kinds understood by FieldSpec.
STRING = "string"
EMAIL = "email"
NUMBER = "number"
INTEGER = "integer"
BOOLEAN = "boolean"
DATE = "date"
UTC_DATETIME = "utc_datetime"
OBJECT = "object"
ID_LIST = "id_list"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 date or datetime into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def to_finite_float(value: Any) -> Optional[float]:
    """Return ``value`` as a finite float, or None for non-numbers, bools and overflow."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        as_float = float(value)
    except OverflowError:
        return None
    return as_float if math.isfinite(as_float) else None


def parse_positive_int(value: Any) -> Optional[int]:
    """Parse a database id; anything outside 1..MAX_ID is rejected."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    else:
        text = str(value or "").strip()
        if not text.isascii() or not text.isdigit():
            return None
        parsed = int(text)
    return parsed if 0 < parsed <= MAX_ID else None


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: str = STRING
    required: bool = False
    column: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    choices: Optional[Tuple[str, ...]] = None
    nullable: bool = True
    default: Any = None
    strip: bool = True

    @property
    def target(self) -> str:
        return self.column or self.name


def _clean_value(spec: FieldSpec, value: Any, errors: List[str]) -> Any:
    if spec.kind in (STRING, EMAIL):
        if not isinstance(value, str):
            errors.append(f"{spec.name} must be a string")
            return _MISSING
        text = value.strip() if spec.strip else value
        if spec.min_length is not None and len(text) < spec.min_length:
            if spec.min_length == 1:
                errors.append(f"{spec.name} must not be empty")
            else:
                errors.append(f"{spec.name} must be at least {spec.min_length} characters")
            return _MISSING
        if spec.max_length is not None and len(text) > spec.max_length:
            errors.append(f"{spec.name} must be at most {spec.max_length} characters")
            return _MISSING
        if spec.kind == EMAIL:
            if not EMAIL_RE.match(text):
                errors.append(f"{spec.name} must be a valid email address")
                return _MISSING
            text = text.lower()
        if spec.choices is not None:
            normalized = text.lower()
            if normalized not in spec.choices:
                errors.append(f"{spec.name} must be one of: {', '.join(spec.choices)}")
                return _MISSING
            return normalized
        return text

    if spec.kind in (NUMBER, INTEGER):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"{spec.name} must be a number")
            return _MISSING
        as_float = to_finite_float(value)
        if as_float is None:
            errors.append(f"{spec.name} must be a finite number")
            return _MISSING
        if spec.kind == INTEGER:
            if not as_float.is_integer():
                errors.append(f"{spec.name} must be an integer")
                return _MISSING
            if abs(int(value)) > MAX_ID:
                errors.append(f"{spec.name} is out of range")
                return _MISSING
        if spec.minimum is not None and value < spec.minimum:
            if spec.minimum == 0:
                errors.append(f"{spec.name} must not be negative")
            else:
                errors.append(f"{spec.name} must be at least {spec.minimum:g}")
            return _MISSING
        if spec.maximum is not None and value > spec.maximum:
            errors.append(f"{spec.name} must be at most {spec.maximum:g}")
            return _MISSING
        return int(value) if spec.kind == INTEGER else float(value)

    if spec.kind == BOOLEAN:
        if not isinstance(value, bool):
            errors.append(f"{spec.name} must be a boolean")
            return _MISSING
        return value

    if spec.kind == DATE:
        parsed = parse_datetime(value) if isinstance(value, str) else None
        if parsed is None:
            errors.append(f"{spec.name} must be a valid date")
            return _MISSING
        return parsed

    if spec.kind == UTC_DATETIME:
        if not isinstance(value, str) or not UTC_DATETIME_RE.match(value.strip()):
            errors.append(f"{spec.name} must be ISO 8601")
            return _MISSING
        parsed = parse_datetime(value)
        if parsed is None:
            errors.append(f"{spec.name} must be ISO 8601")
            return _MISSING
        return parsed

    if spec.kind == OBJECT:
        if not isinstance(value, dict):
            errors.append(f"{spec.name} must be an object")
            return _MISSING
        return value

    if spec.kind == ID_LIST:
        if not isinstance(value, list) or not value:
            errors.append(f"{spec.name} must be a non-empty array")
            return _MISSING
        ids: List[int] = []
        for item in value:
            parsed_id = parse_positive_int(item)
            if parsed_id is None:
                errors.append(f"Invalid {spec.name} entry: {item}")
                return _MISSING
            if parsed_id not in ids:
                ids.append(parsed_id)
        return ids

    raise ValueError(f"Unknown field kind: {spec.kind}")


Check = Callable[[Dict[str, Any]], Optional[str]]


@dataclass(frozen=True)
class Schema:
    fields: Tuple[FieldSpec, ...]
    checks: Tuple[Check, ...] = field(default_factory=tuple)

    @property
    def targets(self) -> Tuple[str, ...]:
        return tuple(spec.target for spec in self.fields)

    def clean(self, payload: Any, *, partial: bool = False) -> Dict[str, Any]:
        """
        Validate ``payload`` and return the cleaned values keyed by column name.

        Every violated constraint is collected before raising, so the client
        sees the whole list in a single InvalidRequest. Unknown keys are ignored.
        With ``partial`` set, only supplied fields are checked and the result
        must not be empty.
        """
        if not isinstance(payload, dict):
            raise InvalidRequest("Request body must be a JSON object")

        errors: List[str] = []
        cleaned: Dict[str, Any] = {}
        for spec in self.fields:
            value = payload.get(spec.name, _MISSING)
            if value is _MISSING or (value is None and not partial and spec.required):
                if spec.required and not partial:
                    errors.append(f"{spec.name} is required")
                elif not partial and spec.default is not None:
                    cleaned[spec.target] = spec.default
                continue
            if value is None:
                if spec.required or not spec.nullable:
                    errors.append(f"{spec.name} must not be null")
                else:
                    cleaned[spec.target] = None
                continue
            result = _clean_value(spec, value, errors)
            if result is not _MISSING:
                cleaned[spec.target] = result

        if not errors and not partial:
            errors.extend(self.check(cleaned))
        if errors:
            raise InvalidRequest("; ".join(errors))
        if partial and not cleaned:
            raise InvalidRequest("No fields to update")
        return cleaned

    def check(self, values: Dict[str, Any]) -> List[str]:
        """Run cross-field checks against a complete set of column values."""
        messages = []
        for check in self.checks:
            message = check(values)
            if message:
                messages.append(message)
        return messages


def end_not_before_start(start: str, end: str, message: str) -> Check:
    def _check(values: Dict[str, Any]) -> Optional[str]:
        start_value = values.get(start)
        end_value = values.get(end)
        if start_value is None or end_value is None:
            return None
        if end_value < start_value:
            return message
        return None

    return _check


def require_fields(payload: Dict[str, Any], names: Sequence[str]) -> None:
    missing = [name for name in names if payload.get(name) in (None, "")]
    if missing:
        raise InvalidRequest("; ".join(f"{name} is required" for name in missing))
