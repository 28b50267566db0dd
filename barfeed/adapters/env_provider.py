from __future__ import annotations

import logging
import os

from barfeed.ports.secrets_provider import SecretsProvider

_LOGGER = logging.getLogger(__name__)


class MissingSecretError(ValueError):
    """
    Raised when a logical secret cannot be resolved from the environment.
    """

    def __init__(self, secret_name: str) -> None:
        super().__init__(secret_name)
        self.secret_name = secret_name

    def __str__(self) -> str:
        return f"Secret '{self.secret_name}' is unavailable"


class EnvSecretsProvider(SecretsProvider):
    def __init__(
        self,
        prefix: str = "BARFEED_SECRET_",
        allowed: dict[str, str] | None = None,
    ) -> None:
        """
        Map logical secret names to environment variables `{prefix}{suffix}`.
        """

        if not prefix:
            raise ValueError("Environment prefix must be a non-empty string")
        self._prefix = prefix
        # logical name -> environment variable suffix
        base_allowed: dict[str, str] = {
            "client_id": "CLIENT_ID",
            "client_secret": "CLIENT_SECRET",
        }
        if allowed:
            base_allowed.update(allowed)
        self._allowed = base_allowed

    def get(self, secret_name: str) -> str:
        """Resolve a logical secret name to a concrete environment variable value."""

        if secret_name not in self._allowed:
            raise MissingSecretError(secret_name)

        env_var = f"{self._prefix}{self._allowed[secret_name]}"
        value = os.environ.get(env_var)
        if not value:
            raise MissingSecretError(secret_name)

        _LOGGER.debug(
            "secret_resolved",
            extra={
                "event": "secret_resolved",
                "secret_name": secret_name,
                "source": "env",
            },
        )
        return value
