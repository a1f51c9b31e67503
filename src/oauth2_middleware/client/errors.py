from typing import Any


class OAuthFlowError(Exception):
    """Base exception for OAuth flow errors."""

    pass


class ProviderError(OAuthFlowError):
    """
    Raised when the token endpoint answers with an error.

    Carries the machine readable ``error`` code, the human readable
    ``error_description`` and whatever the provider sent back.
    """

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        status_code: int | None = None,
        response_body: dict[str, Any] | None = None,
    ):
        super().__init__(error_description or error)
        self.error = error
        self.error_description = error_description
        self.status_code = status_code
        self.response_body = response_body or {}


class TwoFactorRequiredError(ProviderError):
    """
    Raised when the provider asks for a two-factor authentication code.

    Ask the user for a one-time code and repeat the grant call with it, e.g.:

        await provider.get_access_token(
            PasswordWithTfaGrant(),
            {"username": "foo", "password": "bar", "totp": "123456"},
        )
    """

    pass


class ProtocolViolationError(OAuthFlowError, ValueError):
    """Raised when a request would break the protocol, before it is sent."""

    pass


class MissingGrantParameterError(OAuthFlowError, ValueError):
    """Raised when a grant is used without one of its required parameters."""

    def __init__(self, grant_type: str, parameter: str):
        super().__init__(f"Required parameter not passed for {grant_type} grant: {parameter}")
        self.grant_type = grant_type
        self.parameter = parameter


class UnknownGrantError(OAuthFlowError, KeyError):
    """Raised when looking up a grant type that is not registered."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
