from uuid import uuid4


def new_id() -> str:
    """Opaque internal id (32 lowercase hex chars)."""
    return uuid4().hex
