"""
Startup overrides resolved from the environment and the command line.

Built once by ArgumentResolver and passed by reference to every consumer
(fleet, coordinator, API) instead of living in process-wide globals.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class StartupOverrides:
    """Immutable process-wide flags and overrides."""
    crypt_key: Optional[str] = field(default=None, repr=False)
    network_group: Optional[str] = None
    working_directory: Optional[str] = None
    config_watch: bool = True
    restart_allowed: bool = True
    ignore_unsupported_environment: bool = False
    process_required: bool = False
    system_required: bool = False

    @property
    def has_crypt_key(self) -> bool:
        return bool(self.crypt_key)

    def to_dict(self) -> dict:
        """Serializable view with the crypt key redacted."""
        return {
            "crypt_key_set": self.has_crypt_key,
            "network_group": self.network_group,
            "working_directory": self.working_directory,
            "config_watch": self.config_watch,
            "restart_allowed": self.restart_allowed,
            "ignore_unsupported_environment": self.ignore_unsupported_environment,
            "process_required": self.process_required,
            "system_required": self.system_required,
        }
