from __future__ import annotations

import os

# BaseSettings is provided by the `pydantic-settings` package in Pydantic v2
from .local import LocalSettings
from .dev import DevSettings
from .test import TestSettings
from .stage import StageSettings
from .prod import ProdSettings

# Mode selector: use MODE env var if set, else fall back to APP_ENV, then 'local'
MODE = (os.environ.get("MODE") or os.environ.get("APP_ENV") or "local").lower()


_MAPPING = {
    "local": LocalSettings,
    "dev": DevSettings,
    "test": TestSettings,
    "testing": TestSettings,
    "stage": StageSettings,
    "staging": StageSettings,
    "prod": ProdSettings,
    "production": ProdSettings,
}


def _choose_settings_class(mode: str):
    return _MAPPING.get(mode, LocalSettings)


# Each settings class reads its own env file (see `model_config.env_file`),
# environment variables take precedence.
SettingsClass = _choose_settings_class(MODE)
settings = SettingsClass()

__all__ = ["settings", "SettingsClass", "MODE"]
