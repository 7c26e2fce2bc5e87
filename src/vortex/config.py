# vortex/config.py
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


class ClientSettings(BaseSettings):
    """
    Scalar options for a vortex Client, loaded from environment variables
    prefixed with ``VORTEX_`` or from a .env file.

    Values passed explicitly to :class:`vortex.client.Client` take precedence
    over anything read from the environment.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "secrets.env"),
        env_file_encoding="utf-8",
        env_prefix="VORTEX_",
        extra="ignore",
        case_sensitive=False,
    )

    base_url: str = Field(
        default="", description="Prefix prepended verbatim to every request path"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Transport timeout in seconds"
    )
    retries: int = Field(
        default=0,
        ge=0,
        description="Retries for transport failures (timeouts, network errors). 0 disables retrying.",
    )
    backoff_factor: float = Field(
        default=0.5, ge=0, description="Multiplier for exponential retry waits (seconds)"
    )
    user_agent: str = Field(
        default=f"vortex/{__version__}",
        description="User-Agent sent when no User-Agent header is configured",
    )
    insecure: bool = Field(
        default=False, description="Skip TLS certificate verification"
    )


@lru_cache
def get_settings() -> ClientSettings:
    """
    Provides access to the environment-derived client settings.

    The instance is cached; construct :class:`ClientSettings` directly for
    per-client overrides.

    Returns:
        ClientSettings: The settings instance.
    """
    return ClientSettings()
