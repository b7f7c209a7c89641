"""
waagent.conf configuration

Typed key-value options with defaults:
- schema: recognised keys, their types and defaults
- parser: file parsing, merge with defaults, show
"""

from .parser import AgentConfig
from .schema import CONFIG_SCHEMA, ExpectedType, get_config_defaults

__all__ = ["AgentConfig", "CONFIG_SCHEMA", "ExpectedType", "get_config_defaults"]
