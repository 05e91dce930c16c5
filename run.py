"""floorgen CLI entry point.

Provides subcommands for running the HTTP API server, generating a layout
file and inspecting an existing layout file. Accepts configuration via flags
and environment variables, with optional .env loading.

Run `python run.py --help` for details.
"""

import argparse
import json
import os
import signal
import sys
from textwrap import dedent

from dotenv import load_dotenv

__version__ = "0.3.0"


def parse_args(argv: list[str]) -> argparse.Namespace:
    description = """
    floorgen: procedural floor-plan generator

    Generate connected room-and-corridor layouts from a seed, inspect saved
    layout files, or run the HTTP API. Configuration can be provided via CLI
    flags or environment variables. If both are present, CLI flags take
    precedence.
    """

    epilog = dedent(
        """
        Environment variables:
          HOST                     Bind address for the web server (default: 0.0.0.0)
          PORT                     Port for the web server (default: 5000)
          DATABASE_URL             SQLAlchemy database URI (default: sqlite:///instance/floorgen.db)
          FLOORGEN_TIME_BUDGET_MS  Default generation time budget for API requests
          FLOORGEN_LOG_LEVEL       debug | info | warn | error (default: info)

        Examples:
          # Generate the reference layout and write JSON
          python run.py generate --seed 42 --rooms 20 20 --out layout.json

          # Same layout in the compact binary form
          python run.py generate --seed 42 --format binary --out layout.bin

          # Print a summary of a saved layout (JSON, gzipped JSON or binary)
          python run.py inspect layout.bin

          # Run the API server on a custom port
          python run.py server --port 8080
        """
    )

    parser = argparse.ArgumentParser(
        prog="floorgen",
        description=dedent(description),
        epilog=epilog,
        formatter_class=argparse.RawTextHelpFormatter,
    )

    parser.add_argument(
        "--env-file",
        dest="env_file",
        help="Path to a .env file to load before processing flags",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"floorgen {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # server subcommand
    server_parser = subparsers.add_parser(
        "server",
        help="Run the HTTP API server",
        formatter_class=argparse.RawTextHelpFormatter,
        description="Run the Flask layout API server",
    )
    server_parser.add_argument("--host", default=None, help="Host interface to bind (default: env HOST or 0.0.0.0)")
    server_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: env PORT or 5000)")
    server_parser.add_argument(
        "--db",
        dest="db_uri",
        default=None,
        help="Database URI (default: env DATABASE_URL or sqlite:///instance/floorgen.db)",
    )
    server_parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    server_parser.set_defaults(command="server")

    # generate subcommand
    gen_parser = subparsers.add_parser(
        "generate",
        help="Generate a layout and write it to a file (or stdout)",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    gen_parser.add_argument("--seed", default=None, help="Integer or phrase; omitted = time-derived")
    gen_parser.add_argument("--width", type=int, default=40)
    gen_parser.add_argument("--height", type=int, default=40)
    gen_parser.add_argument("--rooms", type=int, nargs=2, metavar=("MIN", "MAX"), default=None)
    gen_parser.add_argument("--room-size", type=int, nargs=2, metavar=("MIN", "MAX"), default=None)
    gen_parser.add_argument("--iterations", type=int, default=None, help="Max optimizer iterations")
    gen_parser.add_argument("--budget-ms", type=int, default=None, help="Time budget in milliseconds")
    gen_parser.add_argument("--format", choices=("json", "binary"), default="json")
    gen_parser.add_argument("--schema-version", type=int, default=None)
    gen_parser.add_argument("--gzip", action="store_true", help="Gzip the JSON output")
    gen_parser.add_argument("--out", default=None, help="Output path (default: JSON to stdout)")
    gen_parser.set_defaults(command="generate")

    # inspect subcommand
    inspect_parser = subparsers.add_parser(
        "inspect",
        help="Decode a layout file and print its summary",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    inspect_parser.add_argument("path", help="Layout file (JSON, gzipped JSON or binary)")
    inspect_parser.add_argument("--validate", action="store_true", help="Also run structural validation")
    inspect_parser.set_defaults(command="inspect")

    # If no subcommand provided, default to server
    if len(argv) == 0:
        argv = ["server"]

    return parser.parse_args(argv)


def _request_from_args(args):
    from floorgen.layout import GenerationRequest, derive_seed

    params = {"seed": derive_seed(args.seed), "width": args.width, "height": args.height}
    if args.rooms:
        params["min_rooms"], params["max_rooms"] = args.rooms
    if args.room_size:
        lo, hi = args.room_size
        params.update(min_room_width=lo, min_room_height=lo, max_room_width=hi, max_room_height=hi)
    if args.iterations is not None:
        params["max_optimizer_iterations"] = args.iterations
    if args.budget_ms is not None:
        params["time_budget_ms"] = args.budget_ms
    return GenerationRequest(**params)


def cmd_generate(args) -> int:
    from floorgen.layout import (
        SCHEMA_VERSION,
        ConfigurationError,
        GenerationFailure,
        encode_binary,
        encode_json,
        generate_layout,
    )
    from floorgen.layout.codec import SUPPORTED_VERSIONS

    version = SCHEMA_VERSION if args.schema_version is None else args.schema_version
    if version not in SUPPORTED_VERSIONS:
        print(
            f"[ERROR] invalid parameters: schema version must be one of {SUPPORTED_VERSIONS} (got {version})",
            file=sys.stderr,
        )
        return 2
    gen_request = _request_from_args(args)
    try:
        result = generate_layout(gen_request)
    except ConfigurationError as exc:
        print(f"[ERROR] invalid parameters: {exc}", file=sys.stderr)
        return 2
    except GenerationFailure as exc:
        print(f"[ERROR] generation failed: {exc}", file=sys.stderr)
        print(json.dumps(exc.to_dict(), sort_keys=True), file=sys.stderr)
        return 1
    if args.format == "binary":
        data = encode_binary(result.layout, version)
    else:
        data = encode_json(result.layout, version, compress=args.gzip)
    for warning in result.warnings:
        print(f"[WARN] {warning}", file=sys.stderr)
    if args.out:
        with open(args.out, "wb") as f:
            f.write(data)
        summary = result.layout.summary()
        print(f"Wrote {args.out} ({len(data)} bytes)")
        print(json.dumps(summary, sort_keys=True))
    else:
        if args.format == "binary" or args.gzip:
            print("[ERROR] binary / gzip output requires --out", file=sys.stderr)
            return 2
        print(data.decode("utf-8"))
    return 0


def cmd_inspect(args) -> int:
    from floorgen.layout import DecodeError, decode, validate_layout
    from floorgen.layout.codec import validate_round_trip

    path = args.path
    if not os.path.exists(path):
        print(f"[ERROR] File not found: {path}", file=sys.stderr)
        return 1
    with open(path, "rb") as f:
        data = f.read()
    try:
        layout = decode(data)
    except DecodeError as exc:
        print(f"[ERROR] cannot decode {path}: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(layout.summary(), sort_keys=True))
    if args.validate:
        problems = validate_layout(layout) + validate_round_trip(layout)
        for p in problems:
            print(f"[INVALID] {p}")
        return 1 if problems else 0
    return 0


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    if getattr(args, "env_file", None):
        load_dotenv(args.env_file)
    else:
        # Load default .env if present (no error if missing)
        load_dotenv()

    mode = (getattr(args, "command", None) or "server").lower()
    if mode != "server":
        # Keep command output clean: stdout may carry the layout itself
        os.environ.setdefault("FLOORGEN_SUPPRESS_ROUTE_MAP", "1")
        os.environ.setdefault("FLOORGEN_LOG_LEVEL", "warn")

    if mode == "generate":
        return cmd_generate(args)
    if mode == "inspect":
        return cmd_inspect(args)

    env_host = os.getenv("HOST", "0.0.0.0")
    env_port = int(os.getenv("PORT", "5000"))
    host = getattr(args, "host", None) or env_host
    port = int(getattr(args, "port", None) or env_port)
    db_uri_cli = getattr(args, "db_uri", None)
    # Make DATABASE_URL available to the Flask app BEFORE importing it
    if db_uri_cli:
        os.environ["DATABASE_URL"] = db_uri_cli
    db_banner = db_uri_cli or os.getenv("DATABASE_URL") or "auto (instance/floorgen.db)"

    def handle_sigint(sig, frame):
        print("\n[INFO] Shutting down server...")
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_sigint)

    from floorgen.logging_utils import log
    from floorgen.server import start_server

    divider = "=" * 40
    lines = [
        divider,
        "  floorgen layout server",
        divider,
        f"  {'Host:':12} {host}",
        f"  {'Port:':12} {port}",
        f"  {'Database:':12} {db_banner}",
        divider,
        "",
    ]
    print("\n".join(lines))
    debug = bool(getattr(args, "debug", False) or os.getenv("FLASK_DEBUG") == "1")
    log.info(event="startup", host=host, port=port, db=db_banner, debug=debug)
    start_server(host=host, port=port, debug=debug)
    return 0


def _console_main() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
