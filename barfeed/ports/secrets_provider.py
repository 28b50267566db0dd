"""SecretsProvider Port Interface.

Contract: Retrieve secret material (OAuth client id/secret) by logical name;
no persistence here.
"""

from __future__ import annotations

from typing import Protocol


class SecretsProvider(Protocol):
    def get(self, secret_name: str) -> str: ...

    """
    Retrieve a secret value using its logical name.
    Keeps the OAuth client credentials out of config files.
    """
