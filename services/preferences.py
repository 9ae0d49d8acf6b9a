from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from storage.local_store import LocalStore

THEME_KEY = "themePreference"


class ThemePreference(str, Enum):
    LIGHT = "light"
    DARK = "dark"
    SYSTEM = "system"


DARK_PALETTE: Dict[str, str] = {
    "background": "#121212",
    "text": "#ffffff",
    "textSecondary": "#aaaaaa",
    "card": "#1e1e1e",
    "border": "#333333",
    "inputBackground": "#2c2c2c",
}

LIGHT_PALETTE: Dict[str, str] = {
    "background": "#f5f5f5",
    "text": "#333333",
    "textSecondary": "#666666",
    "card": "#ffffff",
    "border": "#dddddd",
    "inputBackground": "#ffffff",
}

ACCENTS: Dict[str, str] = {
    "primary": "#007AFF",
    "danger": "#FF3B30",
    "success": "#34C759",
}


class Preferences:
    """Device-local display preferences."""

    def __init__(self, local_store: LocalStore):
        self.local_store = local_store
        raw = local_store.get(THEME_KEY)
        try:
            self._theme = ThemePreference(raw) if raw else ThemePreference.SYSTEM
        except ValueError:
            self._theme = ThemePreference.SYSTEM

    @property
    def theme(self) -> ThemePreference:
        return self._theme

    def set_theme(self, pref: ThemePreference | str) -> None:
        self._theme = ThemePreference(pref)
        self.local_store.set(THEME_KEY, self._theme.value)

    def is_dark(self, system_scheme: Optional[str] = None) -> bool:
        if self._theme == ThemePreference.SYSTEM:
            return system_scheme == "dark"
        return self._theme == ThemePreference.DARK

    def palette(self, system_scheme: Optional[str] = None) -> Dict[str, str]:
        base = DARK_PALETTE if self.is_dark(system_scheme) else LIGHT_PALETTE
        return {**base, **ACCENTS}
