import secrets
import string
from datetime import datetime, timezone

_ALPHABET = string.ascii_lowercase + string.digits


def id_generator(prefix: str, length: int):
    """Return a factory producing ids like `<prefix>_<random chars>`."""
    def generate() -> str:
        suffix = "".join(secrets.choice(_ALPHABET) for _ in range(length))
        return f"{prefix}_{suffix}"
    return generate


def generate_invite_code() -> str:
    """8 uppercase hex characters."""
    return secrets.token_hex(4).upper()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo on the way back; treat naive values as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
