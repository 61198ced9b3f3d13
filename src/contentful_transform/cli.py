"""
Command-line interface for contentful_transform.

Reads records from stdin, a JSON export or a space, optionally filters,
transforms and validates them, and writes them to stdout, files or spaces.

Examples:
    contentful-transform -s export.json -f 'slug.startswith("news-")' -o news.json
    contentful-transform -s abc123/staging -c article 'title = title.strip()' -o abc123/staging --publish
    cat export.json | contentful-transform --validate -x > /dev/null
"""

import argparse
import sys
from typing import Any, Dict, List, Optional

import pydantic

from contentful_transform.core.exceptions import ContentfulTransformException
from contentful_transform.core.logger import get_logger
from contentful_transform.models.run_config import RunConfig
from contentful_transform.models.sink_config import sink_config_from_target
from contentful_transform.models.source_config import source_config_from_target
from contentful_transform.orchestrator import TransformOrchestrator

logger = get_logger(__name__)

PUBLISH_MODES = ("published", "force")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contentful-transform",
        description="Filter, transform and validate Contentful entries, then write them to files or spaces",
    )
    parser.add_argument(
        "transform",
        nargs="?",
        help="Python statements run against each entry; reassigned field names are written back",
    )
    parser.add_argument(
        "--source", "-s",
        default="-",
        help="'-' for stdin, a JSON export file, or a space id as space[/environment] (default: stdin)",
    )
    parser.add_argument(
        "--access-token", "-a",
        help="Delivery or management token (default: $CONTENTFUL_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--output", "-o",
        action="append",
        default=[],
        help="'-' for stdout, a file path with an extension, or space[/environment]; repeatable",
    )
    parser.add_argument("--content-type", "-c", help="Only read entries of this content type")
    parser.add_argument(
        "--query", "-q",
        help="Extra query string for the source space, e.g. 'fields.slug=home' (requires --content-type)",
    )
    parser.add_argument("--filter", "-f", help="Python expression; entries where it is falsy are dropped")
    parser.add_argument("--quiet", "-x", action="store_true", help="Suppress progress output")
    parser.add_argument("--raw", action="store_true", help="Read and write newline-delimited JSON records")
    parser.add_argument("--validate", action="store_true", help="Check entries against their content types")
    parser.add_argument("--draft", action="store_true", help="Include unpublished entries and assets")
    parser.add_argument(
        "--publish",
        action="store_true",
        help="Publish entries written to a space that were published in the source",
    )
    parser.add_argument(
        "--publish-mode",
        choices=PUBLISH_MODES,
        help="'published' is the same as --publish; 'force' publishes every entry written to a space",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress and request stats")
    return parser


def publish_setting(args: argparse.Namespace) -> Any:
    if args.publish_mode == "force":
        return "force"
    return bool(args.publish or args.publish_mode)


def build_run_config(args: argparse.Namespace) -> RunConfig:
    source = source_config_from_target(
        args.source,
        raw=args.raw,
        content_type=args.content_type,
        query=args.query,
    )
    outputs = list(args.output or ["-"])
    # raw mode always streams to stdout as well
    if args.raw and "-" not in outputs:
        outputs.append("-")
    sinks: List[Dict[str, Any]] = [
        sink_config_from_target(target, raw=args.raw, publish=publish_setting(args)) for target in outputs
    ]
    return RunConfig.model_validate(
        {
            "source": source,
            "outputs": sinks,
            "access_token": args.access_token,
            "filter": args.filter,
            "transform": args.transform,
            "validation": {"enabled": args.validate},
            "draft": args.draft,
            "verbose": args.verbose,
            "quiet": args.quiet,
        }
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parse arguments and run one transform.

    Returns:
        0 when every record was processed cleanly, 1 on per-record errors or a
        fatal failure.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.query and not args.content_type:
        parser.error("--query requires --content-type")

    try:
        cfg = build_run_config(args)
    except pydantic.ValidationError as e:
        print(f"Invalid arguments: {e}", file=sys.stderr)
        return 1

    try:
        result = TransformOrchestrator().run(cfg)
    except ContentfulTransformException as e:
        logger.error(f"Transform failed: {e}", exc_info=args.verbose)
        print(str(e), file=sys.stderr)
        return 1

    for message in result.error_messages:
        print(message, file=sys.stderr)
    return 0 if result.ok else 1


def cli() -> None:
    """Console script entry point: `contentful-transform`."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
