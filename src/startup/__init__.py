"""
Startup subsystem
-----------------

Exports:
- ArgumentResolver: environment + command-line overrides
- InstanceRegistrar: single-instance lock
- InvalidArgumentError
"""

from .argument_resolver import ArgumentResolver
from .errors import InvalidArgumentError
from .instance_registrar import InstanceRegistrar

__all__ = [
    "ArgumentResolver",
    "InstanceRegistrar",
    "InvalidArgumentError",
]
