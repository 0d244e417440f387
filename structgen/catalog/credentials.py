"""Call-time credential resolution for catalog providers.

Resolution order for a provider whose `credential_env` is e.g. `OPENAI_API_KEY`:
    1. Process environment variable `OPENAI_API_KEY` (after `.env` loading).
    2. Key file `<keys_dir>/openai_api_key.key`, when a key directory is set.

Providers without `credential_env` are unauthenticated (local endpoints) and
resolve to `None`. A configured but unavailable credential raises
`ConfigurationError`.
"""

import os
from typing import Protocol

from dotenv import load_dotenv

from structgen.catalog.types import ProviderDescriptor
from structgen.core.errors import ConfigurationError

load_dotenv()


class CredentialResolver(Protocol):
    def resolve(self, provider: ProviderDescriptor) -> str | None:
        ...


class EnvCredentialResolver:
    """Resolve provider secrets from the environment or a key directory."""

    def __init__(self, keys_dir: str | None = None) -> None:
        self.keys_dir = keys_dir

    def _load_key_file(self, env_name: str) -> str | None:
        if not self.keys_dir:
            return None
        path = os.path.join(self.keys_dir, env_name.lower() + ".key")
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip() or None

    def resolve(self, provider: ProviderDescriptor) -> str | None:
        """Return the secret for `provider`, or `None` for keyless providers.

        Raises:
            ConfigurationError: When `credential_env` is set but no value exists.
        """
        env_name = (provider.credential_env or "").strip()
        if not env_name:
            return None

        value = os.getenv(env_name, "").strip()
        if value:
            return value

        value = self._load_key_file(env_name)
        if value:
            return value

        raise ConfigurationError(
            f"{provider.name} credential missing (environment variable {env_name} is not set)"
        )


class StaticCredentialResolver:
    """Resolver over a fixed `{credential_env: secret}` mapping."""

    def __init__(self, secrets: dict[str, str]) -> None:
        self.secrets = dict(secrets)

    def resolve(self, provider: ProviderDescriptor) -> str | None:
        env_name = (provider.credential_env or "").strip()
        if not env_name:
            return None
        value = self.secrets.get(env_name)
        if not value:
            raise ConfigurationError(
                f"{provider.name} credential missing (environment variable {env_name} is not set)"
            )
        return value
