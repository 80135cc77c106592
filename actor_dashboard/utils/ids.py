import secrets
import uuid


def new_id() -> str:
    # UUID4 is fine for row ids
    return str(uuid.uuid4())


def new_session_token() -> str:
    return f"session_{secrets.token_urlsafe(24)}"
