"""Client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from .exceptions import ConfigurationError

DEFAULT_API_BASE = "https://api.mailgun.net/v3"
DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class Config:
    """Connection settings shared by every call made through a client.

    Attributes:
        domain: Routing domain used in request paths.
        api_key: Private API key. Used as the basic-auth password and as the
            HMAC key for webhook signatures.
        api_base: Base URL of the API, without trailing slash.
        timeout: Default request timeout in seconds.
    """

    domain: str
    api_key: str
    api_base: str = DEFAULT_API_BASE
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        object.__setattr__(self, "api_base", self.api_base.rstrip("/"))

    def __repr__(self) -> str:
        return (
            f"Config(domain={self.domain!r}, api_key='***', "
            f"api_base={self.api_base!r}, timeout={self.timeout!r})"
        )

    def with_api_base(self, api_base: str) -> Config:
        """Return a copy pointing at another API base."""
        return replace(self, api_base=api_base)

    @classmethod
    def from_env(cls) -> Config:
        """Build a config from ``MG_DOMAIN``, ``MG_API_KEY`` and ``MG_URL``.

        Raises:
            ConfigurationError: If ``MG_DOMAIN`` or ``MG_API_KEY`` is unset.
        """
        domain = os.environ.get("MG_DOMAIN", "")
        api_key = os.environ.get("MG_API_KEY", "")
        if not domain:
            raise ConfigurationError("required environment variable MG_DOMAIN not set")
        if not api_key:
            raise ConfigurationError("required environment variable MG_API_KEY not set")

        return cls(
            domain=domain,
            api_key=api_key,
            api_base=os.environ.get("MG_URL") or DEFAULT_API_BASE,
        )
