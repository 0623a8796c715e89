"""Per-route options: tags and security requirements."""

from dataclasses import dataclass, field
from typing import Literal

type SecurityType = Literal["basic", "bearer", "apiKey"]


@dataclass(frozen=True)
class SecurityRequirement:
    """One accepted authentication scheme for an operation."""

    type: str
    scopes: tuple[str, ...] = ()

    @classmethod
    def basic(cls) -> "SecurityRequirement":
        """HTTP basic authentication."""
        return cls("basic")

    @classmethod
    def bearer(cls, *scopes: str) -> "SecurityRequirement":
        """HTTP bearer token authentication with optional scopes."""
        return cls("bearer", tuple(scopes))

    @classmethod
    def api_key(cls) -> "SecurityRequirement":
        """API key passed in the ``X-API-Key`` header."""
        return cls("apiKey")


@dataclass(frozen=True)
class RouteOptions:
    """Documentation options attached to a registered route."""

    tags: tuple[str, ...] = ()
    security: tuple[SecurityRequirement, ...] = field(default_factory=tuple)
