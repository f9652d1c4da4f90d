"""
The requested-field contract shared by every extractor.

A job asks for a subset of ExtractField. "name" is always part of the set.
Whatever strategy produced a result, the result must carry every requested
field with the right coarse type:

    name      string
    age       number (0 when unknown)
    email     string ("" when unknown)
    contacts  list of strings ([] when unknown)
"""

from typing import Iterable

from models.enums import ExtractField
from extraction.errors import InvalidShape

# Gemini structured-output type names
_SCHEMA_TYPES = {
    ExtractField.NAME: {"type": "STRING"},
    ExtractField.AGE: {"type": "NUMBER"},
    ExtractField.EMAIL: {"type": "STRING"},
    ExtractField.CONTACTS: {"type": "ARRAY", "items": {"type": "STRING"}},
}

NAME_PLACEHOLDER = "Name not found"

PLACEHOLDERS = {
    ExtractField.NAME: NAME_PLACEHOLDER,
    ExtractField.AGE: 0,
    ExtractField.EMAIL: "",
    ExtractField.CONTACTS: [],
}


def normalize_fields(fields: Iterable[str]) -> list[ExtractField]:
    """Dedupe, validate, and put "name" first. Raises ValueError on an unknown field."""
    result = [ExtractField.NAME]
    for raw in fields:
        field = ExtractField(raw)
        if field not in result:
            result.append(field)
    return result


def build_response_schema(fields: Iterable[ExtractField]) -> dict:
    fields = list(fields)
    return {
        "type": "OBJECT",
        "properties": {f.value: dict(_SCHEMA_TYPES[f]) for f in fields},
        "required": [f.value for f in fields],
    }


def _type_ok(field: ExtractField, value) -> bool:
    if field in (ExtractField.NAME, ExtractField.EMAIL):
        return isinstance(value, str)
    if field == ExtractField.AGE:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field == ExtractField.CONTACTS:
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return False


def validate_shape(data, fields: Iterable[ExtractField]) -> dict:
    """
    Check data against the requested fields and return only those keys.

    Raises:
        InvalidShape: data is not an object, or a field is missing / mistyped
    """
    if not isinstance(data, dict):
        raise InvalidShape(f"Expected a JSON object, got {type(data).__name__}")

    cleaned = {}
    for field in fields:
        if field.value not in data:
            raise InvalidShape(f"Missing required field '{field.value}'")
        value = data[field.value]
        if not _type_ok(field, value):
            raise InvalidShape(
                f"Field '{field.value}' has wrong type {type(value).__name__}"
            )
        cleaned[field.value] = value
    return cleaned


def placeholder_result(fields: Iterable[ExtractField]) -> dict:
    result = {}
    for f in fields:
        value = PLACEHOLDERS[f]
        result[f.value] = list(value) if isinstance(value, list) else value
    return result
