import importlib
import os
from typing import Optional

from launchpad.conf.settings import LaunchpadSettings

CONFIG_FILE_ENV = 'LAUNCHPAD_CONFIG_FILE'
DEFAULT_CONFIG_MODULE = 'launchpad.conf.testnet'

_settings: Optional[LaunchpadSettings] = None
_settings_module: Optional[str] = None


def get_global_settings() -> LaunchpadSettings:
    """Return the settings of the module named by `LAUNCHPAD_CONFIG_FILE`.

    The module must define a `SETTINGS` object. The result is cached; asking
    again after the variable changed to another module raises, since part of
    the process already uses the previous settings.
    """
    global _settings, _settings_module

    module_name = os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_MODULE)
    if _settings is not None:
        if module_name != _settings_module:
            raise RuntimeError(
                f'settings already loaded from {_settings_module}, refusing to switch to {module_name}'
            )
        return _settings

    module = importlib.import_module(module_name)
    settings = getattr(module, 'SETTINGS', None)
    if not isinstance(settings, LaunchpadSettings):
        raise TypeError(f'{module_name}.SETTINGS is not a LaunchpadSettings instance')
    _settings = settings
    _settings_module = module_name
    return _settings
