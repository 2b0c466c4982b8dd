from __future__ import annotations

from .repositories import SettingsRepository


# PUBLIC_INTERFACE
class SettingsGate:
    """Read-only view over the user settings that decides which features are active."""

    def __init__(self, settings: SettingsRepository) -> None:
        self._settings = settings

    def notifications_enabled(self) -> bool:
        return bool(self._settings.get()["notifications_enabled"])
