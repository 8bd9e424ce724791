import re
import uuid

from .errors import ValidationFailure

# Internal ids are server-generated: '{prefix}_{32 hex chars}'.
# Human readable request ids (CAMRY_TOY_001) live in inspection_requests.request_id.

_ID_RE = re.compile(r'^[A-Za-z0-9_-]+$')


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def validate_id(id_value, expected_prefix: str):
    """Validate that `id_value` is a non-empty string starting with `expected_prefix`.

    Accepts 'prefix_' or 'prefix-' for ids written by older clients.
    Returns (True, 'ok') on success or (False, 'error message') on failure.
    """
    if not id_value or not isinstance(id_value, str):
        return False, 'id must be a non-empty string'
    allowed_prefixes = (f"{expected_prefix}_", f"{expected_prefix}-")
    if not any(id_value.startswith(p) for p in allowed_prefixes):
        return False, f"id must start with one of: {', '.join(allowed_prefixes)}"
    # allow alphanumeric, underscore, hyphen only
    if not _ID_RE.match(id_value):
        return False, 'id contains invalid characters'
    if len(id_value) < 6 or len(id_value) > 250:
        return False, 'id length out of range'
    return True, 'ok'


def require_id(id_value, expected_prefix: str, field: str):
    """validate_id that raises ValidationFailure instead of returning a tuple."""
    ok, msg = validate_id(id_value, expected_prefix)
    if not ok:
        raise ValidationFailure(f'invalid {field}', errors=[{'field': field, 'message': msg}], **{field: id_value})
    return id_value
