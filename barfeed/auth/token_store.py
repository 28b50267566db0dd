"""Process-wide OAuth credential holder.

The five credential fields always change together: readers get an immutable
snapshot and writers replace the whole group under one lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, ConfigDict

# TradeStation occasionally wraps payloads with a WCF type hint that breaks parsing
VENDOR_TYPE_ARTIFACT = (
    '"__type":"EquitiesOptionsOrderConfirmation:#TradeStation.Web.Services.DataContracts",'
)


@dataclass(frozen=True, slots=True)
class RefreshedToken:
    """The two fields a refresh-token exchange renews."""

    access_token: str
    expires_in: Optional[str] = None


class Credential(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    access_token: Optional[str] = None
    expires_in: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    userid: Optional[str] = None

    @classmethod
    def from_response(cls, body: str) -> Credential:
        """Parse a token-endpoint (or cache) body, stripping the vendor envelope artifact."""
        return cls.model_validate_json(body.replace(VENDOR_TYPE_ARTIFACT, ""))

    def with_refresh(self, refreshed: RefreshedToken) -> Credential:
        """Copy with the volatile fields replaced; refresh_token, token_type and userid are kept."""
        return self.model_copy(
            update={
                "access_token": refreshed.access_token,
                "expires_in": refreshed.expires_in,
            }
        )

    def for_cache(self) -> Credential:
        """Copy safe to persist: only the long-lived fields survive."""
        return self.model_copy(update={"access_token": None, "expires_in": None})


class TokenStore:
    """
    Holds the current Credential.

    Only the bootstrap and the refresh scheduler write; every stream session
    reads a snapshot when it builds a request.
    """

    def __init__(self, credential: Optional[Credential] = None) -> None:
        self._lock = threading.Lock()
        self._credential = credential or Credential()

    def read(self) -> Credential:
        with self._lock:
            return self._credential

    def update_all(self, credential: Credential) -> None:
        with self._lock:
            self._credential = credential

    @property
    def is_ready(self) -> bool:
        """True once a refresh-capable credential is loaded."""
        return bool(self.read().refresh_token)
