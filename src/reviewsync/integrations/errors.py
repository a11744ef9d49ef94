"""Exception hierarchy for integration handshakes and review sync.

Every error carries a machine-readable code, a human-readable message and
the HTTP status code the API layer should answer with. Handshake errors are
terminal for the attempt; sync errors are scoped to one platform.
"""

from typing import Optional


class IntegrationError(Exception):
    """Base exception for all integration errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        status_code: HTTP status code for API responses
    """

    def __init__(self, message: str, code: str, status_code: int) -> None:
        """Initialize integration error.

        Args:
            message: Human-readable error description
            code: Machine-readable error code
            status_code: HTTP status code (400, 500, etc.)
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code


class ConfigurationError(IntegrationError):
    """Raised when required configuration is missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="configuration_error", status_code=500)


class BadRequestError(IntegrationError):
    """Raised when an OAuth callback or request is malformed.

    Attributes:
        reason: Short reason token used in redirect query strings
    """

    def __init__(self, message: str, reason: str = "missing_params") -> None:
        super().__init__(message=message, code="bad_request", status_code=400)
        self.reason = reason


class ProviderAuthError(IntegrationError):
    """Raised when the provider redirected back with an OAuth error.

    Typically the user denied consent. No token exchange is attempted.
    """

    def __init__(self, provider_error: str, description: Optional[str] = None) -> None:
        message = f"Provider returned authorization error: {provider_error}"
        if description:
            message = f"{message} ({description})"
        super().__init__(message=message, code="provider_auth_error", status_code=400)
        self.provider_error = provider_error


class TokenExchangeFailedError(IntegrationError):
    """Raised when the authorization code cannot be exchanged for tokens.

    The remedy for the user is to retry the authorization.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="token_exchange_failed", status_code=502)


class NoResourceFoundError(IntegrationError):
    """Raised when the user authenticated but owns nothing connectable.

    Distinct from a token failure: the user must create a page or location
    on the provider before connecting.

    Attributes:
        reason: Short reason token (e.g. "no_pages", "no_locations")
    """

    def __init__(self, message: str, reason: str = "no_resource") -> None:
        super().__init__(message=message, code="no_resource_found", status_code=422)
        self.reason = reason


class CryptoError(IntegrationError):
    """Raised when credential material cannot be decrypted.

    Indicates key mismatch or storage corruption. Never retried.
    """

    def __init__(self, message: str = "Credential could not be decrypted") -> None:
        super().__init__(message=message, code="crypto_error", status_code=500)


class AuthExpiredError(IntegrationError):
    """Raised by adapters when the provider rejects the stored credential."""

    def __init__(
        self, message: str = "Credential expired or revoked; reauthorization required"
    ) -> None:
        super().__init__(message=message, code="auth_expired", status_code=401)


class TransientError(IntegrationError):
    """Raised for network, timeout, and payload failures that may succeed later."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="transient_error", status_code=503)
