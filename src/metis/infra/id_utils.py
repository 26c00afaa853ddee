"""Prefixed ID generation.

Public-facing IDs use a ``{prefix}_{random}`` format so their origin is
visible at a glance:

- ``metis_a8Kx3nQ9mP2r``  conversation (one per dashboard session)
- ``msg_kJ3pW7mD4bNx``    message stored inside a session

Provider-generated IDs (``call_xxx`` tool call ids) are kept as-is.
"""

import secrets
import string

_ALPHABET = string.ascii_letters + string.digits
_DEFAULT_LENGTH = 12  # ~71 bits of entropy

SESSION_ID_PREFIX = "metis"
MESSAGE_ID_PREFIX = "msg"


def generate_id(prefix: str, length: int = _DEFAULT_LENGTH) -> str:
    """Return ``"{prefix}_{random}"`` with *length* alphanumeric characters."""
    suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
    return f"{prefix}_{suffix}"


def new_session_id() -> str:
    return generate_id(SESSION_ID_PREFIX)


def new_message_id() -> str:
    return generate_id(MESSAGE_ID_PREFIX)
