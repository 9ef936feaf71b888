"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Sequence

import httpx

from userdir.config import load_settings
from userdir.errors import ConfigurationError

logger = logging.getLogger("userdir.main")

_DEFAULT_SERVICE_URL = "http://127.0.0.1:8000"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP directory service")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (defaults to USERDIR_CONFIG or config/userdir.yaml)",
    )

    token_parser = subparsers.add_parser(
        "token", help="Request a bearer token from a running directory service"
    )
    token_parser.add_argument(
        "--service-url",
        default=_DEFAULT_SERVICE_URL,
        help=f"Base URL of the directory service (default: {_DEFAULT_SERVICE_URL})",
    )
    token_parser.add_argument("--login", required=True, help="Login to authenticate as")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "token"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _serve(*, host: str, port: int, config: str | None) -> None:
    from userdir.api import create_app
    import uvicorn

    try:
        settings = load_settings(Path(config) if config else None)
    except ConfigurationError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    logger.info("Starting user directory API on http://%s:%s", host, port)
    app = create_app(settings=settings)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _request_token(service_url: str, login: str, password: str) -> int:
    endpoint = service_url.rstrip("/") + "/api/auth/login"

    try:
        response = httpx.post(endpoint, json={"login": login, "password": password}, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact directory service: {exc}", file=sys.stderr)
        return 1

    if response.status_code != 200:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        print(
            f"Service responded with {response.status_code}: {detail or response.text.strip()}",
            file=sys.stderr,
        )
        return 1

    try:
        token = response.json()["token"]
    except (ValueError, KeyError):
        print("Service returned an unexpected response format.", file=sys.stderr)
        return 1

    print(token)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "serve":
        _serve(host=args.host, port=args.port, config=args.config)
        return 0
    if args.command == "token":
        password = getpass("Password: ")
        return _request_token(args.service_url, args.login, password)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
