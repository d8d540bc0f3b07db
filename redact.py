#!/usr/bin/env python3
"""
OCR Region Redactor CLI

Runs OCR over images, finds text matching a pattern and paints a cover
image over the tightest boxes containing each match.

Usage:
    python redact.py --input ./screenshots/ --output ./redacted/ --cover cover.png
"""

import sys
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional

import click

from ocr_redactor.context import load_cover_image
from ocr_redactor.errors import ConfigurationError
from ocr_redactor.models import DEFAULT_PATTERN, RedactionParams
from ocr_redactor.output_writer import write_all_outputs
from ocr_redactor.pattern import compile_pattern
from ocr_redactor.pipeline import find_images, get_processing_stats, process_batch_with_tqdm


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)
logger = logging.getLogger(__name__)


def validate_input_path(ctx, param, value):
    """Validate that the input file or directory exists."""
    path = Path(value)
    if not path.exists():
        raise click.BadParameter(f"Input path does not exist: {value}")
    return path


def validate_pattern(ctx, param, value):
    """Compile the pattern once so syntax errors surface before any OCR runs."""
    try:
        compile_pattern(value, ctx.params.get("flags") or "")
    except ConfigurationError as e:
        raise click.BadParameter(str(e))
    return value


@click.command()
@click.option(
    "--input", "-i",
    "input_path",
    required=True,
    callback=validate_input_path,
    help="Image file or directory of images to scan"
)
@click.option(
    "--output", "-o",
    "output_dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Output directory for results (images/, manifest.json, regions.csv, summary.json)"
)
@click.option(
    "--cover", "-c",
    required=True,
    envvar="OCR_REDACTOR_COVER",
    help="Cover image path or http(s) URL painted over each match"
)
@click.option(
    "--flags",
    default="",
    envvar="OCR_REDACTOR_FLAGS",
    is_eager=True,
    help="Extra regex flag letters from gimsuxy, e.g. ms for multiline + dotall"
)
@click.option(
    "--pattern", "-p",
    default=DEFAULT_PATTERN,
    envvar="OCR_REDACTOR_PATTERN",
    callback=validate_pattern,
    help="Regular expression to redact. Always case-insensitive."
)
@click.option(
    "--lang",
    default="eng",
    help="Tesseract language(s), e.g. eng or eng+deu. Default: eng"
)
@click.option(
    "--psm",
    default=3,
    type=int,
    help="Tesseract page segmentation mode. Default: 3 (automatic)"
)
@click.option(
    "--oem",
    default=1,
    type=int,
    help="Tesseract OCR engine mode. Default: 1 (LSTM)"
)
@click.option(
    "--tesseract-cmd",
    default=None,
    envvar="TESSERACT_CMD",
    help="Path to the tesseract binary if it is not on PATH"
)
@click.option(
    "--workers", "-w",
    default=1,
    type=int,
    help="Number of parallel worker processes, each with its own OCR engine. Default: 1"
)
@click.option(
    "--subset", "-s",
    default=None,
    type=int,
    help="Process only the first N images (for testing)"
)
@click.option(
    "--always-locate",
    is_flag=True,
    help="Search the recognition tree even when the full transcript does not match"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
def main(
    input_path: Path,
    output_dir: Path,
    cover: str,
    pattern: str,
    flags: str,
    lang: str,
    psm: int,
    oem: int,
    tesseract_cmd: Optional[str],
    workers: int,
    subset: Optional[int],
    always_locate: bool,
    verbose: bool,
):
    """
    Redact text matching a pattern from images.

    Images with at least one match are written as PNG files with the same
    base name, in the same folder layout as the input; originals are never
    modified.

    Outputs:

    \b
    - images/: Redacted copies of matching images
    - manifest.json: Per-image regions and errors
    - regions.csv: One row per redacted region
    - summary.json: Aggregate statistics
    """
    # Set logging level
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Print banner
    click.echo("=" * 60)
    click.echo("OCR Region Redactor")
    click.echo("=" * 60)
    click.echo()

    # Print configuration
    click.echo("Configuration:")
    click.echo(f"  Input:            {input_path}")
    click.echo(f"  Output directory: {output_dir}")
    click.echo(f"  Cover image:      {cover}")
    click.echo(f"  Pattern:          {pattern}")
    if flags:
        click.echo(f"  Flags:            {flags}")
    click.echo(f"  Language:         {lang}")
    click.echo(f"  PSM / OEM:        {psm} / {oem}")
    click.echo(f"  Workers:          {workers}")
    if subset:
        click.echo(f"  Subset:           first {subset} images")
    click.echo()

    params = RedactionParams(
        pattern=pattern,
        flags=flags,
        lang=lang,
        psm=psm,
        oem=oem,
        tesseract_cmd=tesseract_cmd,
        require_transcript_match=not always_locate,
    )

    images = find_images(input_path, subset=subset)
    if not images:
        click.echo(click.style("Error: No images found in input path", fg="red"))
        sys.exit(1)

    click.echo(f"Found {len(images)} image(s) to process")
    click.echo()

    try:
        cover_image = load_cover_image(cover)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e}", fg="red"))
        sys.exit(1)

    output_dir.mkdir(parents=True, exist_ok=True)

    start_time = datetime.now()

    try:
        batch = process_batch_with_tqdm(
            images,
            output_dir,
            params,
            cover_image,
            workers=workers,
            input_root=input_path if input_path.is_dir() else None,
        )
    except KeyboardInterrupt:
        click.echo()
        click.echo(click.style("Processing interrupted by user", fg="yellow"))
        sys.exit(130)
    except Exception as e:
        click.echo(click.style(f"Error during processing: {e}", fg="red"))
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)

    elapsed = datetime.now() - start_time

    click.echo()
    click.echo("Processing complete!")
    click.echo(f"  Time elapsed: {elapsed}")
    click.echo()

    stats = get_processing_stats(batch)

    click.echo("Results:")
    click.echo(f"  Images processed: {stats['successful_images']}/{stats['total_images']}")
    click.echo(f"  Images redacted:  {stats['redacted_images']}")
    click.echo(f"  Total regions:    {stats['total_regions']}")

    if stats['failed_images'] > 0:
        click.echo()
        click.echo(click.style(f"  Failed images: {stats['failed_images']}", fg="yellow"))
        if verbose:
            for image_id in stats['failed_image_ids']:
                click.echo(f"    - {image_id}")

    click.echo()
    click.echo("Writing output files...")

    try:
        paths = write_all_outputs(batch, params, output_dir)
    except OSError as e:
        click.echo(click.style(f"Error writing outputs: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"  {paths['manifest_json']}")
    click.echo(f"  {paths['regions_csv']}")
    click.echo(f"  {paths['summary_json']}")
    click.echo(f"  {output_dir / 'images'}/ ({stats['redacted_images']} images)")

    click.echo()
    click.echo(click.style("Done!", fg="green"))


if __name__ == "__main__":
    main()
