"""
Bridge configuration: YAML loading, defaults and validation.

The file is optional in every section; keys left out fall back to
``DEFAULTS``. Command-line flags are applied on top by the bridge.
"""

import copy
from pathlib import Path
from typing import Optional

import yaml

from footloop import osc
from footloop.protocol import DEFAULT_PREFIX

DEFAULT_CONFIG_PATH = str(Path(__file__).parent / "bridge.yaml")

DEFAULTS = {
    'midi': {
        'input': "FCB1010",
        'output': "FCB1010",
    },
    'osc': {
        'looper_host': osc.DEFAULT_LOOPER_HOST,
        'looper_port': osc.PORT_LOOPER,
        'listen_host': osc.DEFAULT_LISTEN_HOST,
        'listen_port': osc.PORT_LISTEN,
        'prefix': DEFAULT_PREFIX,
    },
    'timing': {
        'tick_ms': 200,
        'heartbeat_budget': 5,
    },
}


def merge_defaults(config: Optional[dict]) -> dict:
    """Return a full config: ``config`` laid over DEFAULTS, section by section."""
    merged = copy.deepcopy(DEFAULTS)
    for section, values in (config or {}).items():
        if isinstance(values, dict) and section in merged:
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def load_config(path: str = DEFAULT_CONFIG_PATH) -> dict:
    """
    Load and validate configuration from YAML file.

    Args:
        path: Path to configuration YAML file

    Returns:
        Validated configuration dictionary with defaults filled in

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML syntax is invalid
        ValueError: If configuration is invalid (via validate_config)
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {path}\n"
            f"See {DEFAULT_CONFIG_PATH} for a template."
        )

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f)

    if raw is not None and not isinstance(raw, dict):
        raise ValueError(
            f"Invalid configuration in {path}\n"
            f"Top level must be a mapping of sections (midi, osc, timing)"
        )

    config = merge_defaults(raw)
    validate_config(config)
    return config


def validate_config(config: dict) -> None:
    """
    Validate a merged configuration.

    Validates:
    - Section types (midi, osc, timing must be mappings)
    - MIDI port patterns are non-empty strings
    - OSC ports in range 1-65535, hosts and prefix non-empty strings
    - Tick length and heartbeat budget > 0

    Args:
        config: Configuration dictionary to validate

    Raises:
        ValueError: If any validation fails
    """
    for section in ('midi', 'osc', 'timing'):
        if not isinstance(config.get(section), dict):
            raise ValueError(
                f"Configuration section '{section}' must be a mapping"
            )

    midi = config['midi']
    for key in ('input', 'output'):
        name = midi.get(key)
        if not isinstance(name, str) or not name:
            raise ValueError(
                f"Invalid midi.{key}: {name!r}\n"
                f"Must be a non-empty port name (substring match)"
            )

    osc_config = config['osc']
    for key in ('looper_port', 'listen_port'):
        port = osc_config.get(key)
        if not isinstance(port, int) or isinstance(port, bool) or not (1 <= port <= 65535):
            raise ValueError(
                f"Invalid osc.{key}: {port}\n"
                f"Port must be in range 1-65535"
            )

    for key in ('looper_host', 'listen_host', 'prefix'):
        value = osc_config.get(key)
        if not isinstance(value, str) or not value:
            raise ValueError(
                f"Invalid osc.{key}: {value!r}\n"
                f"Must be a non-empty string"
            )

    if '/' in osc_config['prefix']:
        raise ValueError(
            f"Invalid osc.prefix: {osc_config['prefix']!r}\n"
            f"Prefix is a single address segment, without '/'"
        )

    timing = config['timing']
    for key in ('tick_ms', 'heartbeat_budget'):
        value = timing.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(
                f"Invalid timing.{key}: {value}\n"
                f"Must be an integer greater than 0"
            )
