"""Command line interface for embeddy.

Usage:
    python . pull sentence-transformers/all-MiniLM-L6-v2 --alias minilm
    python . list
    python . run minilm --text "Hello, world!"
    python . serve --port 8080
    python . rm minilm --purge
    python . env
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from embeddy.config import (
    get_environment,
    get_environment_info,
    list_environment_variables,
)
from embeddy.coordinator import Coordinator, create_coordinator
from embeddy.core import get_logger, setup_logging
from embeddy.core.errors import EmbeddyError, InvalidInputError

# Load environment variables from .env file
load_dotenv()

logger = get_logger("cli")


def _add_data_dir_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Override data directory (default: EMBEDDY_DATA_DIR or ~/.embeddy)",
    )


def _coordinator(args: argparse.Namespace, device: str | None = None) -> Coordinator:
    return create_coordinator(data_dir=args.data_dir, device=device)


# =============================================================================
# Registry Commands
# =============================================================================


def cmd_pull(args: argparse.Namespace) -> int:
    """Handle the pull command."""
    coordinator = _coordinator(args)
    entry = coordinator.pull(args.model, alias=args.alias)
    print(f"Pulled model: {entry.remote_id}")
    print(f"  Alias: {entry.alias}")
    print(f"  Path: {entry.local_path}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """Handle the list command."""
    entries = _coordinator(args).list_registered()
    if not entries:
        print("No models installed.")
        print("Use 'python . pull <model-id>' to download a model.")
        return 0

    print("Installed models:\n")
    for entry in entries:
        print(f"  {entry.alias}")
        print(f"    Repository: {entry.remote_id}")
        print(f"    Path: {entry.local_path}")
        print(f"    Downloaded: {entry.downloaded_at}")
        print()
    return 0


def cmd_rm(args: argparse.Namespace) -> int:
    """Handle the rm command."""
    entry = _coordinator(args).remove(args.alias, purge=args.purge)
    print(f"Removed model: {entry.alias} ({entry.remote_id})")
    return 0


# =============================================================================
# Inference Commands
# =============================================================================


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the run command."""
    if not args.text:
        raise InvalidInputError('No text provided. Use --text "your text"')

    coordinator = _coordinator(args, device=args.device)
    logger.info(f"Generating embeddings for {len(args.text)} texts")
    result = coordinator.embed(args.model, args.text)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the serve command."""
    from embeddy.server import ServerConfig, TransportType, run_server

    config = ServerConfig.from_env(
        transport=TransportType(args.transport),
        host=args.host,
        port=args.port,
    )
    coordinator = _coordinator(args, device=args.device)

    if config.transport != TransportType.STDIO:
        print("Embeddy server starting...", file=sys.stderr)
        print(f"  Device: {coordinator.device}", file=sys.stderr)
        print(f"  Health: {config.url}/api/health", file=sys.stderr)
        print(f"  Embed: {config.url}/api/embed", file=sys.stderr)
        print("  Models are loaded on first request", file=sys.stderr)

    try:
        run_server(config, coordinator)
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    return 0


def cmd_env(args: argparse.Namespace) -> int:
    """Handle the env command."""
    from embeddy.environment import check_environment

    report = check_environment(default_device=args.device, data_dir=args.data_dir)
    report.print_report()

    print("Configuration:")
    for var in list_environment_variables():
        info = get_environment_info(var)
        value = get_environment(var)
        if value is None:
            value = ""
        elif info.category == "hub":
            # Never echo credentials
            value = "(set)"
        print(f"  {info.name}={value}  # {info.description}")
    return 0


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all commands."""
    parser = argparse.ArgumentParser(
        prog="python .",
        description="Lightweight embeddings-only model runtime",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # pull command
    pull_parser = subparsers.add_parser(
        "pull",
        help="Download a model from the Hugging Face Hub",
    )
    pull_parser.add_argument(
        "model",
        type=str,
        help='Hub repository id (e.g. "sentence-transformers/all-MiniLM-L6-v2")',
    )
    pull_parser.add_argument(
        "--alias",
        "-a",
        type=str,
        default=None,
        help="Short name for the model (default: last part of the id)",
    )
    _add_data_dir_argument(pull_parser)
    pull_parser.set_defaults(func=cmd_pull)

    # list command
    list_parser = subparsers.add_parser(
        "list",
        help="List installed models",
    )
    _add_data_dir_argument(list_parser)
    list_parser.set_defaults(func=cmd_list)

    # run command
    run_parser = subparsers.add_parser(
        "run",
        help="Embed text and print the vectors as JSON",
    )
    run_parser.add_argument(
        "model",
        type=str,
        help="Model alias or hub id",
    )
    run_parser.add_argument(
        "--text",
        "-t",
        action="append",
        default=[],
        help="Text to embed (repeatable)",
    )
    run_parser.add_argument(
        "--device",
        "-d",
        type=str,
        default=None,
        help="Device: cpu, cuda, cuda:N, mps (default: EMBEDDY_DEVICE)",
    )
    _add_data_dir_argument(run_parser)
    run_parser.set_defaults(func=cmd_run)

    # serve command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the HTTP API server (models load on demand)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind address (default: EMBEDDY_HOST or 0.0.0.0)",
    )
    serve_parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help="Port (default: EMBEDDY_PORT or 8080)",
    )
    serve_parser.add_argument(
        "--device",
        "-d",
        type=str,
        default=None,
        help="Default device for requests (default: EMBEDDY_DEVICE)",
    )
    serve_parser.add_argument(
        "--transport",
        type=str,
        choices=["http", "sse", "stdio"],
        default="http",
        help="Transport type (default: http)",
    )
    _add_data_dir_argument(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    # rm command
    rm_parser = subparsers.add_parser(
        "rm",
        help="Unregister a model",
    )
    rm_parser.add_argument(
        "alias",
        type=str,
        help="Alias to remove",
    )
    rm_parser.add_argument(
        "--purge",
        action="store_true",
        help="Also delete downloaded files not used by another alias",
    )
    _add_data_dir_argument(rm_parser)
    rm_parser.set_defaults(func=cmd_rm)

    # env command
    env_parser = subparsers.add_parser(
        "env",
        help="Show platform, GPU, and storage details",
    )
    env_parser.add_argument(
        "--device",
        "-d",
        type=str,
        default=None,
        help="Device to check (default: EMBEDDY_DEVICE)",
    )
    _add_data_dir_argument(env_parser)
    env_parser.set_defaults(func=cmd_env)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command line arguments (uses sys.argv if None).

    Returns:
        Exit code (0 for success).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging()
    try:
        return args.func(args)
    except (EmbeddyError, OSError) as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


__all__ = ["build_parser", "main"]
