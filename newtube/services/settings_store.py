"""Runtime instance settings.

The only operator-writable setting is the missing-media behavior. It is
persisted as JSON in the media root so it survives restarts, and is
seeded from the environment when no file exists yet.
"""

import asyncio
import json
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from newtube.core.config import MissingMediaBehaviorName, parse_missing_media_behavior
from newtube.core.exceptions import ConfigError
from newtube.core.logging import get_logger

logger = get_logger(__name__)


class InstanceSettings(BaseModel):
    """Operator-facing settings (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True)

    missing_media_behavior: MissingMediaBehaviorName = Field(
        default="not_found", alias="missingMediaBehavior"
    )

    @field_validator("missing_media_behavior", mode="before")
    @classmethod
    def normalize_behavior(cls, v: object) -> object:
        """Accept legacy aliases such as "404" and "download"."""
        if isinstance(v, str):
            return parse_missing_media_behavior(v)
        return v


class SettingsStore:
    """Holds the current InstanceSettings and persists updates atomically.

    Example:
        >>> store = SettingsStore.load(Path("./media/settings.json"), InstanceSettings())
        >>> await store.update(InstanceSettings(missing_media_behavior="prompt"))
        >>> store.get().missing_media_behavior
        'prompt'
    """

    def __init__(self, path: Path, current: InstanceSettings) -> None:
        self.path = path
        self._current = current
        self._lock = asyncio.Lock()

    @classmethod
    def load(cls, path: Path, defaults: InstanceSettings) -> "SettingsStore":
        """Read settings from ``path``, falling back to ``defaults``.

        An unreadable or invalid file is logged and ignored.
        """
        current = defaults
        if path.exists():
            try:
                current = InstanceSettings.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError, ValueError) as e:
                logger.warning("Ignoring invalid settings file", path=str(path), error=str(e))
        return cls(path, current)

    def get(self) -> InstanceSettings:
        """Current settings."""
        return self._current

    def missing_media_behavior(self) -> MissingMediaBehaviorName:
        """Current missing-media behavior."""
        return self._current.missing_media_behavior

    def _write_sync(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        os.replace(tmp_path, self.path)

    async def update(self, settings: InstanceSettings) -> InstanceSettings:
        """Persist and apply new settings.

        Raises:
            ConfigError: If the settings file could not be written; the
                current settings stay in effect
        """
        payload = json.dumps(settings.model_dump(by_alias=True), indent=2)
        async with self._lock:
            try:
                await asyncio.to_thread(self._write_sync, payload)
            except OSError as e:
                raise ConfigError(
                    f"Could not write settings: {e}", config_path=str(self.path)
                ) from e
            self._current = settings
        logger.info(
            "Settings updated", missing_media_behavior=settings.missing_media_behavior
        )
        return settings


__all__ = ["InstanceSettings", "SettingsStore"]
