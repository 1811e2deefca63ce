"""Command line entry point: quantize an image file for the e-ink display."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from config_helper import get_palette, load_config, setup_logging, validate_config
from image_helper import QuantizeMode, encode_indices, encode_packed, quantize, raster_to_image
from palette import BUILTIN_PALETTES
from source_helper import ScaleMode, load_image, prepare_raster

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='epaper-quantize',
        description='Resize an image to the display and reduce it to the panel palette.'
    )
    parser.add_argument('input', help='Image file to convert')
    parser.add_argument('-o', '--output', help='Output file (default: <input>_quantized.png or .bin)')
    parser.add_argument('--mode', choices=[m.value for m in QuantizeMode],
                        help='Quantization strategy (default from config: diffused)')
    parser.add_argument('--format', dest='output_format', choices=['png', 'indices', 'packed'], default='png',
                        help='png preview, one palette index per byte, or two pixels per byte')
    parser.add_argument('--width', type=int, help='Display width in pixels')
    parser.add_argument('--height', type=int, help='Display height in pixels')
    parser.add_argument('--scale-mode', choices=[m.value for m in ScaleMode],
                        help='pad (letterbox) or crop to fill')
    parser.add_argument('--palette', choices=sorted(BUILTIN_PALETTES),
                        help='Use a built-in palette instead of the configured one')
    parser.add_argument('--config', help='JSON config file (default: ./config/config.json)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    return parser


def build_config(args: argparse.Namespace) -> dict:
    config = load_config(args.config)
    overrides = {
        'mode': args.mode,
        'width': args.width,
        'height': args.height,
        'scale_mode': args.scale_mode
    }
    config.update({k: v for k, v in overrides.items() if v is not None})
    validate_config(config)
    return config


def default_output_path(input_path: str, output_format: str) -> Path:
    path = Path(input_path)
    suffix = '.png' if output_format == 'png' else '.bin'
    return path.with_name(f"{path.stem}_quantized{suffix}")


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = build_config(args)
        palette = BUILTIN_PALETTES[args.palette] if args.palette else get_palette(config)
        raster = prepare_raster(load_image(path=args.input), config)
        quantized = quantize(raster, palette, config['mode'])

        output = Path(args.output) if args.output else default_output_path(args.input, args.output_format)
        if args.output_format == 'png':
            raster_to_image(quantized).save(output, format='PNG')
        elif args.output_format == 'indices':
            output.write_bytes(encode_indices(quantized, palette))
        else:
            output.write_bytes(encode_packed(quantized, palette))
    except ValueError as e:
        logger.error(str(e))
        return 1
    except OSError as e:
        logger.error(f"Failed to write output: {e}")
        return 1

    logger.info(f"Wrote {quantized.width}x{quantized.height} {args.output_format} image to {output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
