# guest_agent/config/parser.py
"""
waagent.conf parser

Line format is `Key=Value`. Blank lines and `#` comments are skipped, inline
comments are stripped, and only the first `=` splits key from value.
Values that do not parse for their key's type fall back to the default.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .schema import (
    NONE_STR,
    ConfigValue,
    ExpectedType,
    get_config_defaults,
    get_expected_type,
    is_valid_key,
)

logger = logging.getLogger('guest-agent.config')

_UNSIGNED = re.compile(r"^\+?[0-9]+$")
U32_MAX = 2 ** 32 - 1
U16_MAX = 2 ** 16 - 1


class AgentConfig:
    """
    Key-value configuration with typed values

    Values read from a file are merged over the defaults, so every schema
    key is always present.
    """

    def __init__(self, values: Optional[Dict[str, ConfigValue]] = None):
        self.values: Dict[str, ConfigValue] = get_config_defaults() if values is None else dict(values)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "AgentConfig":
        """
        Load a configuration file

        Raises:
            OSError: the file cannot be read
        """
        data = Path(path).read_text(encoding="utf-8")
        return cls(cls.merge_with_defaults(cls.parse(data)))

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AgentConfig":
        """Like from_file, but a missing file yields the defaults"""
        path = Path(path)
        if not path.exists():
            logger.info(f"Configuration file {path} not found, using defaults")
            return cls()
        return cls.from_file(path)

    @staticmethod
    def merge_with_defaults(values: Dict[str, ConfigValue]) -> Dict[str, ConfigValue]:
        merged = get_config_defaults()
        merged.update(values)
        return merged

    @staticmethod
    def parse(data: str) -> Dict[str, ConfigValue]:
        """Parse configuration text into recognised keys only"""
        values: Dict[str, ConfigValue] = {}
        defaults = get_config_defaults()

        for line in data.splitlines():
            if not line or line.startswith("#"):
                continue

            pair = split_key_value(line)
            if pair is None:
                continue
            key, value = pair

            if not is_valid_key(key):
                logger.debug(f"Ignoring unknown configuration key: {key}")
                continue

            parsed = parse_config_value(value, get_expected_type(key))
            if parsed is _INVALID:
                logger.debug(f"Invalid value for {key}: {value!r}, using default")
                parsed = defaults[key]
            values[key] = parsed

        return values

    def get_value(self, key: str) -> ConfigValue:
        """
        Typed value for `key`

        Raises:
            KeyError: `key` is not a configuration option
        """
        return self.values[key]

    def get_bool(self, key: str) -> bool:
        return bool(self.values[key])

    def show(self) -> str:
        """Merged configuration, one `Key = value` line per option, sorted"""
        merged = self.merge_with_defaults(self.values)
        lines = [f"{key} = {format_value(merged[key])}" for key in sorted(merged)]
        return "\n".join(lines) + "\n"


_INVALID = object()


def split_key_value(line: str) -> Optional[Tuple[str, str]]:
    line = line.split("#", 1)[0].strip()
    key, _, value = line.partition("=")
    key = key.strip()
    if not key:
        return None
    return key, value.strip()


def parse_config_value(value: str, expected_type: Optional[ExpectedType]):
    if expected_type is ExpectedType.BOOL:
        return parse_bool_value(value)
    if expected_type is ExpectedType.STRING:
        return parse_string_value(value)
    if expected_type is ExpectedType.INTEGER:
        return parse_integer_value(value)
    if expected_type is ExpectedType.PORT:
        return parse_port_value(value)
    return _INVALID


def parse_bool_value(value: str):
    if value in ("y", "Y"):
        return True
    if value in ("n", "N"):
        return False
    return _INVALID


def parse_string_value(value: str):
    if value == '""':
        return NONE_STR
    if value:
        return value
    return _INVALID


def parse_integer_value(value: str):
    if not _UNSIGNED.match(value):
        return _INVALID
    number = int(value)
    return number if number <= U32_MAX else _INVALID


def parse_port_value(value: str):
    if value in ("", NONE_STR):
        return None
    if not _UNSIGNED.match(value):
        return _INVALID
    port = int(value)
    return port if port <= U16_MAX else _INVALID


def format_value(value: ConfigValue) -> str:
    if value is None:
        return NONE_STR
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
