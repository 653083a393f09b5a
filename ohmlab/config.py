"""
Solver and editor settings.

Defaults are usable as-is. An INI file can override them:

    [solver]
    pivot_epsilon = 1e-9
    led_on_resistance = 1.0
    led_off_conductance = 1e-8
    led_max_iterations = 32

    [editor]
    default_x = 200
    default_y = 200
    history_limit = 100

Environment Variables:
    OHMLAB_CONFIG: path of the INI file read by load_config() when no
        explicit path is given
"""

import configparser
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "OHMLAB_CONFIG"

DEFAULT_PIVOT_EPSILON = 1e-9
DEFAULT_LED_ON_RESISTANCE = 1.0
DEFAULT_LED_OFF_CONDUCTANCE = 1e-8
DEFAULT_LED_MAX_ITERATIONS = 32
DEFAULT_POSITION = (200.0, 200.0)


class OhmlabConfig:
    """Tunables shared by the DC solver and the edit session."""

    def __init__(
        self,
        pivot_epsilon=DEFAULT_PIVOT_EPSILON,
        led_on_resistance=DEFAULT_LED_ON_RESISTANCE,
        led_off_conductance=DEFAULT_LED_OFF_CONDUCTANCE,
        led_max_iterations=DEFAULT_LED_MAX_ITERATIONS,
        default_position=DEFAULT_POSITION,
        history_limit=None,
    ):
        if pivot_epsilon <= 0:
            raise ValueError("pivot_epsilon must be positive")
        if led_on_resistance <= 0:
            raise ValueError("led_on_resistance must be positive")
        # An OFF LED may be the only path to a node; its pivot must survive elimination
        if led_off_conductance <= pivot_epsilon:
            raise ValueError("led_off_conductance must be larger than pivot_epsilon")
        if led_max_iterations < 1:
            raise ValueError("led_max_iterations must be at least 1")
        if history_limit is not None and history_limit < 1:
            raise ValueError("history_limit must be at least 1 (or None for unbounded)")

        self.pivot_epsilon = float(pivot_epsilon)
        self.led_on_resistance = float(led_on_resistance)
        self.led_off_conductance = float(led_off_conductance)
        self.led_max_iterations = int(led_max_iterations)
        self.default_position = (float(default_position[0]), float(default_position[1]))
        self.history_limit = history_limit

    def __repr__(self):
        return (f"OhmlabConfig(pivot_epsilon={self.pivot_epsilon}, "
                f"led_on_resistance={self.led_on_resistance}, "
                f"led_off_conductance={self.led_off_conductance}, "
                f"led_max_iterations={self.led_max_iterations}, "
                f"default_position={self.default_position}, "
                f"history_limit={self.history_limit})")


def _read(section, key, getter):
    try:
        return getter(key)
    except ValueError:
        raise ValueError(f"Invalid value for [{section.name}] {key}: {section.get(key)!r}") from None


def load_config(path=None):
    """
    Build an OhmlabConfig from an INI file.

    Args:
        path: INI file path. Defaults to $OHMLAB_CONFIG; if neither is set
            or the file does not exist, the defaults are returned.

    Returns:
        OhmlabConfig

    Raises:
        ValueError: a key holds a value of the wrong type
    """
    path = path or os.getenv(CONFIG_ENV_VAR)
    if not path or not Path(path).exists():
        if path:
            logger.debug("Config file %s not found, using defaults", path)
        return OhmlabConfig()

    parser = configparser.ConfigParser()
    parser.read(path)

    settings = {}
    if parser.has_section("solver"):
        solver = parser["solver"]
        if "pivot_epsilon" in solver:
            settings["pivot_epsilon"] = _read(solver, "pivot_epsilon", solver.getfloat)
        if "led_on_resistance" in solver:
            settings["led_on_resistance"] = _read(solver, "led_on_resistance", solver.getfloat)
        if "led_off_conductance" in solver:
            settings["led_off_conductance"] = _read(solver, "led_off_conductance", solver.getfloat)
        if "led_max_iterations" in solver:
            settings["led_max_iterations"] = _read(solver, "led_max_iterations", solver.getint)

    if parser.has_section("editor"):
        editor = parser["editor"]
        x = _read(editor, "default_x", editor.getfloat) if "default_x" in editor else DEFAULT_POSITION[0]
        y = _read(editor, "default_y", editor.getfloat) if "default_y" in editor else DEFAULT_POSITION[1]
        settings["default_position"] = (x, y)
        if "history_limit" in editor:
            settings["history_limit"] = _read(editor, "history_limit", editor.getint)

    logger.debug("Loaded config from %s: %s", path, settings)
    return OhmlabConfig(**settings)
