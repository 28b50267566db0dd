"""SettingsStore Port Interface.

Contract: Persist and return one opaque settings blob (the serialized credential
cache). Read once at startup, overwritten after each interactive authorization.
"""

from __future__ import annotations

from typing import Optional, Protocol


class SettingsStore(Protocol):
    def get_setting(self) -> Optional[str]: ...

    """
    Return the stored blob, or None when nothing was saved yet.
    """

    def save_setting(self, value: str) -> None: ...

    """
    Replace the stored blob.
    """
