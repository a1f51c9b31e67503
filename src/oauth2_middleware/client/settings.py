from typing import ClassVar
from urllib.parse import urlparse, urlunparse

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TOKEN_URL = "https://auth.api.platform.sh/oauth2/token"
DEFAULT_API_URL = "https://api.platform.sh"


def replace_path(url: str, path: str) -> str:
    """Swap the path of a URL, dropping its query and fragment."""
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))


class ProviderSettings(BaseSettings):
    """
    Settings for talking to an OAuth 2.0 provider.

    All values can be set from ``OAUTH2_*`` environment variables. Either
    ``base_uri`` or ``token_url`` is required: the token URL defaults to
    ``<base_uri>/oauth2/token``, and the authorize URL to the token URL's
    origin with the ``/oauth2/authorize`` path.
    """

    model_config = SettingsConfigDict(env_prefix="OAUTH2_")

    # Used when neither base_uri nor token_url is set
    default_token_url: ClassVar[str | None] = None

    # Client settings
    client_id: str | None = None
    client_secret: str | None = None
    redirect_uri: str | None = None
    scopes: list[str] = Field(default_factory=list)

    # Endpoints
    base_uri: str | None = None
    token_url: str = ""
    authorize_url: str = ""
    api_url: str | None = None

    # HTTP settings for the provider's own client
    timeout: float = 30.0

    @model_validator(mode="after")
    def derive_endpoints(self) -> "ProviderSettings":
        if not self.token_url:
            if self.base_uri:
                self.token_url = replace_path(self.base_uri, "/oauth2/token")
            elif self.default_token_url:
                self.token_url = self.default_token_url
            else:
                raise ValueError("Either base_uri or token_url must be set")
        if not self.authorize_url:
            self.authorize_url = replace_path(self.token_url, "/oauth2/authorize")
        if not self.api_url:
            self.api_url = self.base_uri or replace_path(self.token_url, "")
        return self


class PlatformSettings(ProviderSettings):
    """Provider settings with the Platform.sh accounts service defaults."""

    default_token_url: ClassVar[str | None] = DEFAULT_TOKEN_URL

    client_id: str | None = "platform-cli"
    api_url: str | None = DEFAULT_API_URL
