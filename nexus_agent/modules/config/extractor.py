"""
Embedded configuration recovery.

The agent binary carries its deployment configuration as a JSON object
written into the executable at provisioning time. Recovery is split into
three stages that can be exercised independently:

1. locate   - find the byte offset where the object opens
2. bound    - brace-depth count to the matching closing brace
3. parse    - decode, trim padding, load JSON and map fields
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from nexus_agent.errors import AgentStartupError
from nexus_agent.modules.api.models import AgentConfig

logger = logging.getLogger(__name__)

# Markers are assembled at import so the agent's own compiled code never
# contains them verbatim and cannot match its own scan.
PLACEHOLDER_TOKEN = b"".join((b"<<<", b"NEXUS_CREDENTIALS_PLACEHOLDER", b">>>"))

# Leading keys the provisioning step writes first
LEADING_KEYS = (b"supabase_url", b"controlPlaneUrl")
CONFIG_PREFIXES = tuple(b"".join((b'{"', key, b'":')) for key in LEADING_KEYS)

# Size of the fixed, NUL-padded region some builds append to the binary
TRAILER_SIZE = 4096

PADDING = b"\x00 \t\r\n"

# Normalized key (lowercase, no underscores) -> AgentConfig field
FIELD_ALIASES = {
    "supabaseurl": "control_plane_url",
    "controlplaneurl": "control_plane_url",
    "supabasekey": "api_key",
    "apikey": "api_key",
    "deploymentid": "deployment_id",
    "secretkey": "secret_key",
}

REQUIRED_FIELDS = ("control_plane_url", "api_key", "deployment_id", "secret_key")


class ConfigExtractionError(AgentStartupError):
    """Base class for configuration recovery failures."""


class NotConfiguredError(ConfigExtractionError):
    """The placeholder token is still present: provisioning never ran."""


class ConfigNotFoundError(ConfigExtractionError):
    """No recognizable configuration object in the image."""


class MalformedConfigError(ConfigExtractionError):
    """A configuration object was found but could not be used."""


def find_config_start(image: bytes) -> int:
    """
    Locate the opening brace of the configuration object.

    Args:
        image: Full binary image

    Returns:
        Offset of the earliest recognized opening pattern, or -1
    """
    offsets = [image.find(prefix) for prefix in CONFIG_PREFIXES]
    found = [o for o in offsets if o >= 0]
    return min(found) if found else -1


def find_trailer_start(image: bytes, window: int = TRAILER_SIZE) -> int:
    """Offset of a JSON object at the head of the trailing padded window, or -1."""
    base = max(0, len(image) - window)
    region = image[base:]
    stripped = region.lstrip(PADDING)
    if not stripped.startswith(b'{"'):
        return -1
    return base + (len(region) - len(stripped))


def find_object_end(image: bytes, start: int) -> int:
    """
    Find the exclusive end of the object opening at ``start``.

    Counts raw ``{`` and ``}`` bytes until the depth returns to zero.

    Raises:
        MalformedConfigError: If the braces never balance
    """
    depth = 0
    for i in range(start, len(image)):
        byte = image[i]
        if byte == 0x7B:  # {
            depth += 1
        elif byte == 0x7D:  # }
            depth -= 1
            if depth == 0:
                return i + 1
    raise MalformedConfigError(f"Unbalanced braces in configuration object at offset {start}")


def decode_config_object(span: bytes) -> Dict[str, Any]:
    """
    Decode a candidate span into a JSON object.

    Raises:
        MalformedConfigError: On invalid UTF-8, invalid JSON or a non-object
    """
    try:
        text = span.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedConfigError(f"Configuration is not valid UTF-8: {e}") from e

    text = text.rstrip("\x00 \t\r\n")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedConfigError(f"Configuration is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedConfigError("Configuration JSON is not an object")
    return data


def map_config_fields(data: Dict[str, Any]) -> AgentConfig:
    """
    Map recognized keys case-insensitively onto AgentConfig.

    Raises:
        MalformedConfigError: If a required field is missing or empty
    """
    values: Dict[str, Any] = {}
    for key, value in data.items():
        field = FIELD_ALIASES.get(str(key).lower().replace("_", ""))
        if field and field not in values:
            values[field] = value

    missing = [f for f in REQUIRED_FIELDS if not isinstance(values.get(f), str) or not values[f].strip()]
    if missing:
        raise MalformedConfigError(f"Configuration missing required fields: {', '.join(missing)}")

    try:
        return AgentConfig(**values)
    except ValidationError as e:
        raise MalformedConfigError(f"Configuration failed validation: {e}") from e


def extract_config(image: bytes) -> AgentConfig:
    """
    Recover the AgentConfig embedded in a binary image.

    Args:
        image: Full binary image

    Returns:
        Parsed configuration

    Raises:
        NotConfiguredError: Placeholder present, no configuration
        ConfigNotFoundError: Nothing recognizable in the image
        MalformedConfigError: Found but unusable
    """
    start = find_config_start(image)
    if start < 0:
        start = find_trailer_start(image)

    if start < 0:
        if PLACEHOLDER_TOKEN in image:
            raise NotConfiguredError("Agent has not been configured - placeholder still present")
        raise ConfigNotFoundError("Could not find configuration in executable")

    end = find_object_end(image, start)
    data = decode_config_object(image[start:end])
    logger.debug("Found config JSON at offset %d (%d bytes): %s", start, end - start, _preview(data))
    return map_config_fields(data)


def read_own_image(path: Optional[Union[str, Path]] = None) -> bytes:
    """
    Read the agent's binary image.

    Uses ``path`` when given, the frozen executable when bundled,
    otherwise the entry script.

    Raises:
        ConfigNotFoundError: If the image cannot be read
    """
    if path is None:
        path = sys.executable if getattr(sys, "frozen", False) else sys.argv[0]

    image_path = Path(path)
    try:
        return image_path.read_bytes()
    except OSError as e:
        raise ConfigNotFoundError(f"Could not read executable {image_path}: {e}") from e


def load_agent_config(path: Optional[Union[str, Path]] = None) -> AgentConfig:
    """Read the binary image and extract its configuration."""
    config = extract_config(read_own_image(path))
    logger.info(f"Configuration loaded for deployment: {config.deployment_id}")
    return config


def _preview(data: Dict[str, Any], limit: int = 100) -> str:
    """First ``limit`` characters of the object with values masked."""
    masked = {k: ("***" if isinstance(v, str) and v else v) for k, v in data.items()}
    text = json.dumps(masked)
    return text[:limit] + ("..." if len(text) > limit else "")
