"""pipemagic CLI: pipeline document commands."""

import argparse
import logging
import sys
from importlib.metadata import version as get_version, PackageNotFoundError
from pathlib import Path
from typing import Optional

from ._internal.io.pipeline_file import DEFAULT_PIPELINE_FILENAME
from .config import LOG_LEVELS, configure_logging, resolve_pipeline_path

logger = logging.getLogger(__name__)


def main():
    """Main CLI entry point for pipemagic commands."""
    # Get version for --version argument (handle PackageNotFoundError)
    try:
        pipemagic_version = get_version("pipemagic")
    except PackageNotFoundError:
        pipemagic_version = "dev"

    parser = argparse.ArgumentParser(
        prog="pipemagic",
        description="pipemagic: Incremental execution of image-transform pipelines"
    )
    parser.add_argument("--version", action="version", version=f"pipemagic {pipemagic_version}")
    # Common arguments
    parent_parser = argparse.ArgumentParser(add_help=False)
    parent_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all non-error output."
    )
    parent_parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Logging level (defaults to $PIPEMAGIC_LOG_LEVEL or WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Check a pipeline file for structural errors",
        parents=[parent_parser]
    )
    validate_parser.add_argument(
        "pipeline_path",
        type=Path,
        help="Path to pipeline file (*.imgpipe.json)"
    )
    validate_parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Write validate.json to this directory"
    )

    # plan command
    plan_parser = subparsers.add_parser(
        "plan",
        help="Print the execution order of a pipeline file",
        parents=[parent_parser]
    )
    plan_parser.add_argument(
        "pipeline_path",
        type=Path,
        help="Path to pipeline file (*.imgpipe.json)"
    )

    # new command
    new_parser = subparsers.add_parser(
        "new",
        help="Write a new pipeline file",
        parents=[parent_parser]
    )
    new_parser.add_argument(
        "out",
        type=Path,
        nargs="?",
        default=Path(DEFAULT_PIPELINE_FILENAME),
        help=f"Path of the pipeline file to create (default: {DEFAULT_PIPELINE_FILENAME})"
    )
    new_parser.add_argument(
        "--default",
        action="store_true",
        help="Write the default background-removal pipeline instead of input -> output"
    )

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    configure_logging(args.log_level)

    def _write_validation_result(result, output_dir: Optional[Path]) -> None:
        from ._internal.canonical_json import canonical_dumps

        if output_dir is not None:
            output_dir.mkdir(parents=True, exist_ok=True)
            report_out = output_dir / "validate.json"
            report_out.write_text(canonical_dumps(result.model_dump()) + "\n", encoding="utf-8")
            if not args.quiet:
                print("[OK] Validation complete")
                print(f"  Report: {report_out}")
        else:
            if not args.quiet:
                status = "OK" if result.ok else "FAILED"
                print(f"[{status}] Validation complete")
        if not args.quiet:
            print(f"  Status: {'OK' if result.ok else 'FAILED'}")
            print(f"  Errors: {len(result.errors)}")
            for issue in result.errors:
                print(f"    {issue.code}: {issue.message}")
        if not result.ok:
            sys.exit(1)

    if args.command == "validate":
        try:
            from .api import validate

            pipeline_path = resolve_pipeline_path(args.pipeline_path)
            output_dir = Path(args.output_dir).resolve() if args.output_dir else None

            result = validate(pipeline_path)
            _write_validation_result(result, output_dir)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "plan":
        try:
            from .api import load_pipeline
            from .kernel.schedule import topo_sort

            definition = load_pipeline(resolve_pipeline_path(args.pipeline_path))
            order = topo_sort(definition.nodes, definition.edges)
            if not args.quiet:
                for node_id in order:
                    print(f"{node_id}\t{definition.node_by_id(node_id).type}")
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    elif args.command == "new":
        try:
            from .session import default_pipeline, empty_pipeline
            from ._internal.io.pipeline_file import save_pipeline_to_path

            definition = default_pipeline() if args.default else empty_pipeline()
            out = save_pipeline_to_path(definition, resolve_pipeline_path(args.out))
            logger.info("Wrote pipeline with %d nodes to %s", len(definition.nodes), out)
            if not args.quiet:
                print("[OK] Pipeline created")
                print(f"  Pipeline: {out}")
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
