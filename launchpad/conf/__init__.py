from launchpad.conf.get_settings import get_global_settings
from launchpad.conf.settings import LaunchpadSettings

__all__ = ['LaunchpadSettings', 'get_global_settings']
