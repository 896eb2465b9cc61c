"""
Error taxonomy. Per-request errors end one request/response cycle;
configuration and persistence errors end the process.
"""


class OidcGenTokenError(Exception):
    """Base class for all oidc-gen-token errors."""


class ConfigurationError(OidcGenTokenError):
    """Missing or contradictory startup options."""


class ForgeryError(OidcGenTokenError):
    """Callback state does not match the process state token."""

    def __init__(self, expected: str, received: str):
        super().__init__(f"my state[{expected}] != returned state[{received}]")
        self.expected = expected
        self.received = received


class ProviderError(OidcGenTokenError):
    """Discovery or token exchange failed at the network or provider level."""


class ProtocolShapeError(OidcGenTokenError):
    """Token response is missing a required field."""


class VerificationError(OidcGenTokenError):
    """ID token signature or claims are invalid."""


class PersistenceError(OidcGenTokenError):
    """Token file could not be written."""
