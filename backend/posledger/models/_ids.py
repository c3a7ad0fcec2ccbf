import uuid


def new_id() -> str:
    """Client-generated identifier; the remote side is idempotent per entity id."""
    return str(uuid.uuid4())
