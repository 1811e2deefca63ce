import json
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

from image_helper import QuantizeMode
from palette import INKY_IMPRESSION_COLORS, Palette, parse_color, palette_from_config
from source_helper import ScaleMode

logger = logging.getLogger(__name__)

CONFIG_FILE = os.getenv('EPAPER_CONFIG_FILE', './config/config.json')
DEFAULT_CONFIG = {
    'width': 800,
    'height': 480,
    'rotation': 0,
    'enhanced': 1.0,
    'contrast': 1.0,
    'mode': QuantizeMode.DIFFUSED.value,
    'scale_mode': ScaleMode.PAD.value,
    'background': '#FFFFFF',
    'buffer_size': 4800,
    'palette': dict(INKY_IMPRESSION_COLORS)
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO):
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stdout)


def default_config() -> dict:
    return json.loads(json.dumps(DEFAULT_CONFIG))


def load_config(path: Optional[Union[str, Path]] = None) -> dict:
    path = Path(path or CONFIG_FILE)
    try:
        with open(path, 'r') as f:
            loaded = json.load(f)
    except FileNotFoundError:
        return default_config()
    except json.JSONDecodeError as e:
        logger.warning(f"Ignoring corrupt config file {path}: {e}")
        return default_config()

    if not isinstance(loaded, dict):
        logger.warning(f"Ignoring config file {path}: top level is not an object")
        return default_config()
    return {**default_config(), **loaded}


def save_config(config: dict, path: Optional[Union[str, Path]] = None):
    path = Path(path or CONFIG_FILE)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config, f, indent=4)


def get_palette(config: dict) -> Palette:
    return palette_from_config(config.get('palette'))


def validate_config(config: dict):
    """Raise ValueError if the config cannot drive the pipeline."""
    for key in ('width', 'height', 'buffer_size'):
        value = config.get(key)
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
    for key in ('contrast', 'enhanced', 'rotation'):
        if not isinstance(config.get(key), (int, float)) or isinstance(config.get(key), bool):
            raise ValueError(f"'{key}' must be a number, got {config.get(key)!r}")

    try:
        QuantizeMode(config.get('mode'))
    except ValueError:
        raise ValueError(f"Unknown quantization mode {config.get('mode')!r}") from None
    try:
        ScaleMode(config.get('scale_mode'))
    except ValueError:
        raise ValueError(f"Unknown scale mode {config.get('scale_mode')!r}") from None

    parse_color(config.get('background'))
    get_palette(config)
