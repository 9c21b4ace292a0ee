"""
chatrelay - Configuration

Process-wide provider configuration. Built once at startup from the
environment and handed to the Relay; read-only afterwards.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import urlencode

from .errors import ConfigError


DEFAULT_API_HOST = "https://api.openai.com"
DEFAULT_API_VERSION = "2023-05-15"
DEFAULT_MAX_TOKENS = 1000

DEFAULT_SYSTEM_PROMPT = (
    "You are ChatGPT, a large language model trained by OpenAI. "
    "Follow the user's instructions carefully. Respond using markdown."
)
DEFAULT_TEMPERATURE = 1.0


class ProviderType(str, Enum):
    """Upstream header/URL shape."""
    OPENAI = "openai"  # bearer token, optional organization, model in body
    AZURE = "azure"    # api-key header, deployment in URL, no model in body


@dataclass(frozen=True)
class RelayConfig:
    """Immutable provider configuration."""
    api_type: ProviderType = ProviderType.OPENAI
    api_host: str = DEFAULT_API_HOST
    api_version: str = DEFAULT_API_VERSION
    organization: str = ""
    azure_deployment_id: str = ""
    default_api_key: str = ""
    max_tokens: int = DEFAULT_MAX_TOKENS
    timeout: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "api_host", self.api_host.rstrip("/"))
        if self.max_tokens <= 0:
            raise ConfigError("OPENAI_API_MAX_TOKENS must be a positive integer")
        if self.api_type == ProviderType.AZURE and not self.azure_deployment_id:
            raise ConfigError("OPENAI_AZURE_DEPLOYMENT_ID is required when OPENAI_API_TYPE=azure")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Raises:
            ConfigError: On unknown provider type or invalid numbers.
        """
        env = os.environ if environ is None else environ

        raw_type = env.get("OPENAI_API_TYPE", ProviderType.OPENAI.value).lower().strip()
        try:
            api_type = ProviderType(raw_type)
        except ValueError:
            raise ConfigError(
                f"Invalid OPENAI_API_TYPE {raw_type!r}. Use one of: openai, azure"
            ) from None

        try:
            max_tokens = int(env.get("OPENAI_API_MAX_TOKENS", DEFAULT_MAX_TOKENS))
        except ValueError:
            raise ConfigError("OPENAI_API_MAX_TOKENS must be an integer") from None

        raw_timeout = env.get("OPENAI_API_TIMEOUT", "").strip()
        try:
            timeout = float(raw_timeout) if raw_timeout else None
        except ValueError:
            raise ConfigError("OPENAI_API_TIMEOUT must be a number of seconds") from None

        return cls(
            api_type=api_type,
            api_host=env.get("OPENAI_API_HOST", DEFAULT_API_HOST),
            api_version=env.get("OPENAI_API_VERSION", DEFAULT_API_VERSION),
            organization=env.get("OPENAI_ORGANIZATION", ""),
            azure_deployment_id=env.get("OPENAI_AZURE_DEPLOYMENT_ID", ""),
            default_api_key=env.get("OPENAI_API_KEY", ""),
            max_tokens=max_tokens,
            timeout=timeout,
        )

    @property
    def completions_url(self) -> str:
        if self.api_type == ProviderType.AZURE:
            query = urlencode({"api-version": self.api_version})
            return (
                f"{self.api_host}/openai/deployments/{self.azure_deployment_id}"
                f"/chat/completions?{query}"
            )
        return f"{self.api_host}/v1/chat/completions"

    def resolve_api_key(self, caller_key: str) -> str:
        """Caller-supplied key wins over the server default."""
        return caller_key or self.default_api_key
