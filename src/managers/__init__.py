"""
Managers package - configuration loading
"""

from .config_manager import ConfigManager, ConfigError

__all__ = ['ConfigManager', 'ConfigError']
