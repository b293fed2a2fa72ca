"""
Validation utilities for input validation and error handling.
"""
import json
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .error_handlers import ValidationError, get_error_message

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


def validate_email(email: str) -> str:
    """Validate email format."""
    if not email or not isinstance(email, str):
        raise ValueError("Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise ValueError("Email too long (max 255 characters)")

    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Please provide a valid email address")

    return email


def validate_integer_field(
    value: Any,
    field_name: str,
    min_value: int | None = None,
    max_value: int | None = None,
    required: bool = True,
    default: int | None = None,
) -> int | None:
    """Validate an integer field."""
    if value is None or value == "":
        if required and default is None:
            raise ValidationError(f"{field_name} is required")
        return default

    if not isinstance(value, int):
        try:
            value = int(value)
        except (ValueError, TypeError):
            raise ValidationError(f"{field_name} must be a valid integer")

    if min_value is not None and value < min_value:
        raise ValidationError(f"{field_name} must be at least {min_value}")

    if max_value is not None and value > max_value:
        raise ValidationError(f"{field_name} must not exceed {max_value}")

    return value


def validate_candidate_id(value: Any) -> int:
    try:
        candidate_id = int(value)
    except (ValueError, TypeError):
        raise ValidationError(get_error_message("invalid_candidate_id"))
    if candidate_id < 1:
        raise ValidationError(get_error_message("invalid_candidate_id"))
    return candidate_id


def validate_search_term(search: str | None) -> str | None:
    if search is None:
        return None
    search = search.strip()
    if not search:
        return None
    if len(search) > 100:
        raise ValidationError("search must not exceed 100 characters")
    return search


def parse_json_list_field(raw: str | None, field_name: str) -> list | None:
    """
    Decode a multipart field that carries a JSON array.

    Returns None when the field was not sent at all, so partial updates can tell
    "leave as is" apart from "replace with an empty list".
    """
    if raw is None:
        return None
    if not raw.strip():
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError(
            get_error_message("invalid_form_data"),
            details=[{"field": field_name, "message": f"Failed to parse {field_name}"}],
        )
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(
            get_error_message("validation_error"),
            details=[{"field": field_name, "message": f"{field_name} must be an array"}],
        )
    return value


def format_pydantic_errors(exc: PydanticValidationError) -> list[dict]:
    """Flatten pydantic errors into [{field, message}] using the wire (camelCase) names."""
    out = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()))
        message = str(err.get("msg") or "")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        out.append({"field": field, "message": message})
    return out


def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent directory traversal and other attacks."""
    if not filename:
        raise ValidationError("Filename is required")

    # Keep only the last path component a browser may have sent.
    filename = filename.replace("\\", "/").rsplit("/", 1)[-1]

    # Remove any null bytes
    filename = filename.replace("\x00", "")

    # Remove leading dots to prevent hidden files
    filename = filename.lstrip(".")

    if len(filename) > 255:
        raise ValidationError("Filename too long")

    if not filename:
        raise ValidationError("Invalid filename")

    return filename
