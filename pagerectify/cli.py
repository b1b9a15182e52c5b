"""Command-line interface for pagerectify."""

import logging
import re
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from dotenv import load_dotenv

from pagerectify import __version__
from pagerectify.errors import RectifyError
from pagerectify.geometry.points import order_corners
from pagerectify.geometry.resample import RectifyConfig, compute_output_dimensions
from pagerectify.pipeline import Pipeline, PipelineConfig
from pagerectify.utils.debug import save_image

# Load environment variables from .env
load_dotenv()

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )


def _parse_points(ctx, param, value: Optional[str]) -> Optional[List[Tuple[float, float]]]:
    """Parse "x,y x,y x,y x,y" (space or semicolon separated) into pairs."""
    if value is None:
        return None

    points = []
    for token in re.split(r'[;\s]+', value.strip()):
        if not token:
            continue
        try:
            x, y = token.split(',')
            points.append((float(x), float(y)))
        except ValueError:
            raise click.BadParameter(f"expected x,y pairs, got {token!r}")

    if len(points) != 4:
        raise click.BadParameter(f"expected 4 points, got {len(points)}")

    return points


def _parse_size(ctx, param, value: Optional[str]) -> Optional[Tuple[float, float]]:
    """Parse "WxH" into a (width, height) pair."""
    if value is None:
        return None

    match = re.fullmatch(r'\s*([0-9.]+)\s*[xX]\s*([0-9.]+)\s*', value)
    if not match:
        raise click.BadParameter(f"expected WIDTHxHEIGHT, got {value!r}")

    try:
        return float(match.group(1)), float(match.group(2))
    except ValueError:
        raise click.BadParameter(f"expected WIDTHxHEIGHT, got {value!r}")


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """pagerectify - turn a photographed page into a flat, upright scan."""
    pass


@main.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
@click.option(
    '--corners',
    '-c',
    callback=_parse_points,
    help='Four corners "x,y x,y x,y x,y" ordered top-left, top-right, bottom-right, bottom-left'
)
@click.option(
    '--display-size',
    callback=_parse_size,
    help='WIDTHxHEIGHT the corners were picked at, if not the natural image size'
)
@click.option(
    '--output',
    '-o',
    'output_path',
    type=click.Path(dir_okay=False),
    help='Output file (.jpg or .png); defaults to ./output/<name>_rectified.jpg'
)
@click.option(
    '--quality',
    type=click.IntRange(1, 100),
    default=95,
    envvar='PAGERECTIFY_JPEG_QUALITY',
    show_default=True,
    help='JPEG quality'
)
@click.option(
    '--workers',
    type=click.IntRange(1, 64),
    default=1,
    envvar='PAGERECTIFY_WORKERS',
    show_default=True,
    help='Threads for the resampling loop'
)
@click.option(
    '--max-pixels',
    type=click.IntRange(1),
    default=RectifyConfig.max_output_pixels,
    envvar='PAGERECTIFY_MAX_OUTPUT_PIXELS',
    show_default=True,
    help='Reject corners that would produce a larger output'
)
@click.option(
    '--debug',
    is_flag=True,
    help='Save debug visualizations to ./debug/<name>/'
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging'
)
def rectify(
    input_path: str,
    corners: Optional[List[Tuple[float, float]]],
    display_size: Optional[Tuple[float, float]],
    output_path: Optional[str],
    quality: int,
    workers: int,
    max_pixels: int,
    debug: bool,
    verbose: bool
) -> None:
    """Rectify the page bounded by --corners in INPUT_PATH."""
    _setup_logging(verbose)

    input_file = Path(input_path)
    if output_path:
        output_file = Path(output_path)
    else:
        output_file = Path('./output') / f"{input_file.stem}_rectified.jpg"

    debug_dir = Path('./debug') / input_file.stem if debug else None

    config = PipelineConfig(
        rectify=RectifyConfig(max_output_pixels=max_pixels, workers=workers),
        jpeg_quality=quality,
    )
    pipeline = Pipeline(config)

    try:
        result = pipeline.process(
            str(input_file),
            corners=corners,
            display_size=display_size,
            debug_output_dir=str(debug_dir) if debug_dir else None,
        )
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Could not rectify {input_file.name}: {e}", exc_info=verbose)
        sys.exit(1)

    written = save_image(
        result.output_image,
        output_file,
        "Rectified output",
        quality=config.jpeg_quality
    )

    width, height = result.output_size
    logger.info(f"Saved: {written} ({width}x{height})")
    logger.info(f"Processing time: {result.processing_time:.3f}s")


@main.command()
@click.option('--corners', '-c', required=True, callback=_parse_points,
              help='Four corners "x,y x,y x,y x,y" ordered TL, TR, BR, BL')
def dimensions(corners: List[Tuple[float, float]]) -> None:
    """Print the output size the given corners would produce."""
    try:
        width, height = compute_output_dimensions(corners)
    except RectifyError as e:
        raise click.ClickException(str(e))
    click.echo(f"{width}x{height}")


@main.command()
@click.option('--points', '-p', required=True, callback=_parse_points,
              help='Four points "x,y x,y x,y x,y" in any order')
def order(points: List[Tuple[float, float]]) -> None:
    """Print four points ordered top-left, top-right, bottom-right, bottom-left."""
    quad = order_corners(points)
    click.echo(' '.join(f"{p.x:g},{p.y:g}" for p in quad))


if __name__ == '__main__':
    main()
