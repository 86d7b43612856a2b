"""Per-run access credential for the deployed lab server."""

import secrets
from dataclasses import dataclass, field

TOKEN_BYTES = 16


@dataclass(frozen=True)
class Credential:
    """An opaque random token scoped to a single deployment.

    The value is kept out of ``repr`` so it cannot leak through logging or
    tracebacks.
    """

    value: str = field(repr=False)
    scope: str = "deployment"

    def __str__(self) -> str:
        return "Credential([redacted])"


def mint(scope: str = "deployment") -> Credential:
    """Generate a fresh credential (32 hex characters)."""
    return Credential(value=secrets.token_hex(TOKEN_BYTES), scope=scope)
