import re


# Qubic identities are 60 upper-case Latin letters (56 key chars + 4 checksum).
QUBIC_IDENTITY_REGEX = re.compile(r"^[A-Z]{60}$")


class InvalidIdentity(ValueError):
    """Identity rejected before any network read was attempted."""


def validate_identity(identity: str) -> str:
    """Validate a Qubic identity and return it stripped of whitespace"""
    if identity is None or not isinstance(identity, str):
        raise InvalidIdentity("Identity is required")

    identity = identity.strip()
    if not identity:
        raise InvalidIdentity("Identity cannot be empty")

    if not QUBIC_IDENTITY_REGEX.match(identity):
        raise InvalidIdentity(f"Invalid Qubic identity format: {identity}")

    return identity


def validate_limit(value: int, max_limit: int = 1000) -> int:
    """Clamp a transaction limit into [1, max_limit]"""
    if value < 1:
        return 1
    if value > max_limit:
        return max_limit
    return value


def truncate_identity(identity: str, head: int = 8, tail: int = 6) -> str:
    """Shorten an identity for display: first ``head`` + "..." + last ``tail``."""
    if not identity or identity == "Unknown":
        return identity
    if len(identity) <= head + tail:
        return identity
    return f"{identity[:head]}...{identity[-tail:]}"
