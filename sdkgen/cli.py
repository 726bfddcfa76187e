"""CLI entrypoints for sdkgen commands."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

from .config import ConfigError, load_settings
from .logging import configure_logging
from .models import ChangeEvent, GenerationStatus
from .orchestrator import Orchestrator


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default=".",
        help="Path to .sdkgen.yml or the directory containing it (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdkgen",
        description="Generate SDKs for the repositories requested by a pull request.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Run generation for a saved pull request webhook payload.",
    )
    _add_verbose_option(run_parser, suppress_default=True)
    _add_config_option(run_parser)
    run_parser.add_argument(
        "payload",
        help="Path to a JSON pull request webhook payload.",
    )
    run_parser.add_argument(
        "--keep-clones",
        action="store_true",
        help="Leave cloned repositories on disk after the run.",
    )
    run_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Maximum number of repositories generated concurrently.",
    )
    run_parser.add_argument(
        "--no-comment",
        action="store_true",
        help="Do not post a status comment on the pull request.",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the webhook receiver.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="0.0.0.0", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for sdkgen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose))

    if args.command == "run":
        _run(parser, args)
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    try:
        settings = load_settings(Path(args.config))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    if args.keep_clones:
        settings = replace(settings, keep_clones=True)
    if args.workers is not None:
        if args.workers < 1:
            parser.exit(1, "--workers must be at least 1\n")
        settings = replace(settings, max_workers=args.workers)
    if args.no_comment:
        settings = replace(settings, post_status_comment=False)

    try:
        payload = json.loads(Path(args.payload).read_text(encoding="utf-8"))
        event = ChangeEvent.from_webhook(payload)
    except FileNotFoundError as exc:
        parser.exit(1, f"{exc}\n")
    except (json.JSONDecodeError, ValueError) as exc:
        parser.exit(1, f"Invalid webhook payload: {exc}\n")

    orchestrator = Orchestrator(settings)
    state = orchestrator.handle_change(event)
    print(orchestrator.summary(state), end="")
    if any(result.status == GenerationStatus.FAILED for result in state.repositories.values()):
        parser.exit(1)


if __name__ == "__main__":
    main(sys.argv[1:])
