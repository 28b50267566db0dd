from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

_LOGGER = logging.getLogger(__name__)


class FileSettingsStore:
    """Persist the settings blob to a single text file (default `settings.json`)."""

    def __init__(self, path: Path | str = "settings.json") -> None:
        self.path = path if isinstance(path, Path) else Path(path)

    def get_setting(self) -> Optional[str]:
        if not self.path.exists():
            return None
        return self.path.read_text(encoding="utf-8")

    def save_setting(self, value: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(self.path)
        _LOGGER.debug(
            "settings_saved",
            extra={"event": "settings_saved", "path": str(self.path)},
        )
