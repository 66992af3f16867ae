"""CLI entry point for chaingate."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path


def _configure_logging(verbose: bool) -> None:
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(show_path=False)],
    )


def _add_trigger_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--event",
        required=True,
        help="Triggering event: workflow_dispatch, push, merge_group or schedule",
    )
    parser.add_argument(
        "--dispatch",
        default=None,
        help="'regression' or the JSON of a PR's context",
    )
    parser.add_argument(
        "--commit-sha",
        default=None,
        help="Explicit revision to validate (workflow_dispatch only)",
    )
    parser.add_argument(
        "--checkout",
        type=Path,
        default=None,
        help="Node source checkout (default: current directory)",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the chaingate CLI."""
    parser = argparse.ArgumentParser(
        prog="chaingate",
        description="Deploy a throwaway node, run the conformance suite, report back",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Generate .chaingate/chaingate.toml from source defaults",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run the full gate pipeline")
    _add_trigger_args(run_parser)
    run_parser.add_argument(
        "--repo",
        default=None,
        help="GitHub repo in owner/repo format that receives the commit status",
    )
    run_parser.add_argument("--run-id", default=None, help="Identifier for this run")
    run_parser.add_argument(
        "--skip-build",
        action="store_true",
        help="Use an already built node binary",
    )

    resolve_parser = subparsers.add_parser(
        "resolve", help="Print the revision a trigger would validate"
    )
    _add_trigger_args(resolve_parser)

    image_parser = subparsers.add_parser(
        "image", help="Build, push and version-check the node image"
    )
    image_parser.add_argument("--image", required=True, help="registry/owner/name")
    image_parser.add_argument("--ref", required=True, help="Git ref, e.g. refs/heads/main")
    image_parser.add_argument("--sha", required=True, help="Commit sha being built")
    image_parser.add_argument("--context", type=Path, default=Path("."))
    image_parser.add_argument("--no-push", action="store_true")
    image_parser.add_argument(
        "--compose-file",
        type=Path,
        default=None,
        help="docker-compose.yml whose node service should use the new image",
    )
    image_parser.add_argument("--service", default="axon")

    args = parser.parse_args(argv)

    if args.init:
        from chaingate.config import init_config

        path = init_config(Path.cwd())
        print(f"Wrote {path}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    _configure_logging(args.verbose)

    if args.command == "run":
        return _cmd_run(args)
    if args.command == "resolve":
        return _cmd_resolve(args)
    return _cmd_image(args)


def _cmd_run(args: argparse.Namespace) -> int:
    from rich.console import Console

    from chaingate.dispatch import parse_trigger
    from chaingate.errors import ResolutionError
    from chaingate.runner import GateRunner, render_summary

    try:
        trigger = parse_trigger(args.event, args.dispatch, args.commit_sha)
    except ResolutionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    runner = GateRunner(
        project_root=Path.cwd(),
        trigger=trigger,
        repo=args.repo,
        run_id=args.run_id,
        checkout=args.checkout,
        skip_build=args.skip_build,
    )
    outcome = runner.run()
    Console().print(render_summary(outcome))
    return outcome.exit_code


def _cmd_resolve(args: argparse.Namespace) -> int:
    from chaingate.dispatch import parse_trigger, resolve_revision
    from chaingate.errors import ResolutionError

    try:
        trigger = parse_trigger(args.event, args.dispatch, args.commit_sha)
        revision = resolve_revision(trigger, args.checkout or Path.cwd())
    except ResolutionError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(revision)
    return 0


def _cmd_image(args: argparse.Namespace) -> int:
    from chaingate.errors import ImageError
    from chaingate.image import compute_metadata, pin_compose_image, publish_image

    meta = compute_metadata(args.image, args.ref, args.sha)
    try:
        name, tag, digest = publish_image(meta, args.context, push=not args.no_push)
        if args.compose_file is not None:
            pin_compose_image(args.compose_file, args.service, f"{name}:{tag}")
    except ImageError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"image_name={name}")
    print(f"image_tag={tag}")
    if digest:
        print(f"digest={digest}")
    return 0


def _get_version() -> str:
    from chaingate import __version__

    return __version__


if __name__ == "__main__":
    sys.exit(main())
