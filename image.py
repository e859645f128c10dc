import argparse
import logging
import sys
import time
from dataclasses import dataclass
from typing import List, Optional

import click
import typer

from modules.convert import (
    ConversionOptions,
    ImageConversionError,
    NoImagesFoundError,
    convert_images,
    resolve_output_dir,
    logger,
    OUTPUT_FORMATS,
    QUALITY_CHOICES,
    DEFAULT_DIMENSIONS,
)

__version__ = "1.0.0"

INTRO_DELAY = 0.5

BANNER = r"""
    ┏┓
    ┃ ┏┓┏┓┓┏┏┓┏┓╋┓┏
    ┗┛┗┛┛┗┗┛┗ ┛ ┗┗┫
                  ┛
"""

TIPS = """
💡 Tips:
    - To convert images in the current directory enter a period for the source folder: .
    - To use the same directory as the source simply press enter on the '(target)' prompt
    - If you just want to convert formats without compression or resize enter 'N' for the resize prompt: n
"""


@dataclass(frozen=True)
class Answers:
    input_path: str
    output_path: str
    output_format: str
    resize: bool
    quality: str
    dimensions: str


def intro():
    typer.secho(BANNER, fg=typer.colors.BRIGHT_BLUE)
    time.sleep(INTRO_DELAY)
    typer.secho("...is an image processing and conversion CLI tool.", fg=typer.colors.BRIGHT_BLUE)
    typer.secho(TIPS, fg=typer.colors.BRIGHT_BLUE, bold=True)


def abort():
    typer.secho("Aborting.", fg=typer.colors.RED, bold=True)
    sys.exit(1)


def prompt_user() -> Answers:
    """Ask for source, target, format and the optional resize settings."""
    try:
        input_path = typer.prompt("📂: Enter the input directory (source)")
        output_path = typer.prompt("📂: Enter the output directory (target)", default="", show_default=False)
        output_format = typer.prompt(
            "📸: Which format would you like to convert to?",
            type=click.Choice(OUTPUT_FORMATS),
            default=OUTPUT_FORMATS[0],
        )
        resize = typer.confirm("📸: Resize images?", default=False)

        quality = QUALITY_CHOICES[0]
        dimensions = DEFAULT_DIMENSIONS
        if resize:
            quality = typer.prompt(
                "📸: Which quality setting would you prefer? (90% means 10% reduction in size)",
                type=click.Choice(QUALITY_CHOICES),
                default=QUALITY_CHOICES[0],
            )
            dimensions = typer.prompt(
                "📸: What resize dimensions should be applied? (Examples: 800x350 or 1200x700)",
                default=DEFAULT_DIMENSIONS,
            )
    except typer.Abort:
        abort()

    return Answers(
        input_path=input_path,
        output_path=resolve_output_dir(input_path, output_path),
        output_format=output_format,
        resize=resize,
        quality=quality,
        dimensions=dimensions,
    )


def summarize_answers(answers: Answers):
    typer.echo("\n")
    typer.echo(typer.style("Source Directory: ", fg=typer.colors.BLUE, bold=True)
               + typer.style(answers.input_path, fg=typer.colors.GREEN, underline=True))
    typer.echo(typer.style("Output Directory: ", fg=typer.colors.BLUE, bold=True)
               + typer.style(answers.output_path, fg=typer.colors.GREEN, underline=True))
    typer.echo(typer.style("Format (convert to this): ", fg=typer.colors.BLUE, bold=True)
               + typer.style(answers.output_format, fg=typer.colors.GREEN, bold=True))
    if answers.resize:
        typer.echo(typer.style("Quality / Dimensions: ", fg=typer.colors.BLUE, bold=True)
                   + typer.style(f"{answers.quality} / {answers.dimensions}", fg=typer.colors.GREEN, bold=True))
    typer.echo("\n")


def summarize_conversions(results: List[Optional[ImageConversionError]]):
    total = len(results)
    errors = [result for result in results if result is not None]
    typer.secho(f"{total - len(errors)} of {total} images converted.", fg=typer.colors.BLUE, bold=True)

    if errors:
        typer.secho(f"{len(errors)} image(s) failed:", fg=typer.colors.RED, bold=True)
        for error in errors:
            typer.secho(f"  - {error}", fg=typer.colors.RED)
    typer.secho("✅ All done!", fg=typer.colors.BRIGHT_GREEN, bold=True)


def run_convert_cli(show_intro: bool = True):
    if show_intro:
        intro()

    answers = prompt_user()
    summarize_answers(answers)

    options = ConversionOptions.from_answers(
        output_format=answers.output_format,
        resize=answers.resize,
        quality=answers.quality,
        dimensions=answers.dimensions,
    )
    try:
        results = convert_images(answers.input_path, answers.output_path, options)
    except NoImagesFoundError as e:
        typer.secho(f"No images in directory: \n{e.directory}", fg=typer.colors.RED, bold=True)
        typer.secho("Exiting.", fg=typer.colors.RED, bold=True)
        sys.exit(0)

    summarize_conversions(results)


def main():
    parser = argparse.ArgumentParser(
        description="Interactive batch image converter (webp, avif, png, jpg, jpeg)",
        formatter_class=argparse.RawTextHelpFormatter
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG level) logging for detailed output."
    )
    parser.add_argument(
        "--no-intro",
        dest="show_intro",
        action="store_false",
        help="Skip the banner and tips."
    )
    args = parser.parse_args()

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    try:
        run_convert_cli(show_intro=args.show_intro)
    except Exception as e:
        typer.echo(f"Error: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
