"""
Config Module - Black Box Interface

Purpose: Recover the agent's deployment configuration from its own binary
Interface: extract_config(), load_agent_config(), read_own_image()
Hidden: Pattern scan, trailing window fallback, brace counting, key mapping

Can be replaced with a different provisioning format (resource section, signed trailer).
"""

from .extractor import (
    PLACEHOLDER_TOKEN,
    ConfigExtractionError,
    ConfigNotFoundError,
    MalformedConfigError,
    NotConfiguredError,
    decode_config_object,
    extract_config,
    find_config_start,
    find_object_end,
    find_trailer_start,
    load_agent_config,
    map_config_fields,
    read_own_image,
)

__all__ = [
    "PLACEHOLDER_TOKEN",
    "ConfigExtractionError",
    "ConfigNotFoundError",
    "MalformedConfigError",
    "NotConfiguredError",
    "decode_config_object",
    "extract_config",
    "find_config_start",
    "find_object_end",
    "find_trailer_start",
    "load_agent_config",
    "map_config_fields",
    "read_own_image",
]
