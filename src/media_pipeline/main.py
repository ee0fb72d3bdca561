"""Main module for the media pipeline CLI."""

import sys
import argparse

from . import __version__
from .upload_images import add_upload_arguments, main as upload_images_main


def main() -> None:
    """
    Entry point for the unified command-line interface (CLI) of the media pipeline.

    The "upload" command forwards its arguments to `upload_images.main`,
    which can also be run on its own.
    """
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="media-pipeline",
        description="Media Pipeline - image ingestion with display renditions and thumbnails",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload one image with default settings
  media-pipeline upload photo.jpg --upload-dir ./uploads

  # Upload a batch on a thread pool, WebP derivatives
  media-pipeline upload a.jpg b.png c.webp --processor multithread --format webp

  # Show version
  media-pipeline version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    upload_parser: argparse.ArgumentParser = subparsers.add_parser(
        "upload", help="Validate, store and derive renditions for local images"
    )
    add_upload_arguments(upload_parser)

    subparsers.add_parser("version", help="Show version information")

    argv = sys.argv[1:]
    args: argparse.Namespace = parser.parse_args(argv)

    if args.command == "upload":
        sys.exit(upload_images_main(argv[1:]))

    elif args.command == "version":
        print("Media Pipeline CLI")
        print(f"Version {__version__}")
        print("Image uploads with display renditions and thumbnails")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
