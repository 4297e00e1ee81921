"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

import httpx

from userdir.config import Settings, load_settings
from userdir.log import configure_logging

logger = logging.getLogger("userdir.main")

_DEFAULT_SERVICE_URL = "http://localhost:8080"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=None, help="Port for the API (default: 8080)")
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: USERDIR_CONFIG)",
    )
    serve_parser.add_argument("--log-level", default=None, help="Override the configured log level")

    users_parser = subparsers.add_parser("users", help="List users held by a running service")
    users_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running service (default: USERDIR_SERVICE_URL or http://localhost:8080)",
    )

    create_parser = subparsers.add_parser("create-user", help="Create a user on a running service")
    create_parser.add_argument("--email", required=True, help="Unique email address")
    create_parser.add_argument("--name", required=True, help="Display name")
    create_parser.add_argument("--service-url", default=None, help="Base URL of a running service")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "users", "create-user"}

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


def _service_url(value: str | None) -> str:
    base = value or os.getenv("USERDIR_SERVICE_URL") or _DEFAULT_SERVICE_URL
    return base.rstrip("/")


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    message = payload.get("message") or payload.get("error") or f"HTTP {response.status_code}"
    fields = payload.get("fields") or {}
    if fields:
        details = ", ".join(f"{name}: {text}" for name, text in sorted(fields.items()))
        message = f"{message} ({details})"
    return message


def _resolve_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config).expanduser() if getattr(args, "config", None) else None
    settings = load_settings(config_path)
    overrides: dict[str, object] = {}
    if getattr(args, "host", None):
        overrides["host"] = args.host
    if getattr(args, "port", None) is not None:
        overrides["port"] = args.port
    if getattr(args, "log_level", None):
        overrides["log_level"] = args.log_level
    return Settings.from_dict(overrides, settings) if overrides else settings


def _serve(settings: Settings) -> None:
    from userdir.service import create_app
    import uvicorn

    logger.info("Starting user directory API on http://%s:%s", settings.host, settings.port)

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
        access_log=False,
        proxy_headers=False,
    )


def _list_users(service_url: str) -> int:
    endpoint = service_url + "/api/v1/users"

    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user directory service: {exc}")
        return 1

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {_error_message(response)}")
        return 1

    try:
        payload = response.json()
    except ValueError:
        print("Service returned an unexpected response format.")
        return 1
    users = sorted(payload.get("users", []), key=lambda item: item.get("id", ""))

    if not users:
        print("No users are currently registered.")
        return 0

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<10}  {'Name':<24}  {'Email':<32}  {'Role':<10}  Created")
    print("-" * 100)
    for user in users:
        print(
            f"{user.get('id', '?'):<10}  {user.get('name', ''):<24}  "
            f"{user.get('email', ''):<32}  {user.get('role', ''):<10}  {user.get('created_at', '')}"
        )
    return 0


def _create_user(service_url: str, email: str, name: str) -> int:
    endpoint = service_url + "/api/v1/users"

    try:
        response = httpx.post(endpoint, json={"email": email, "name": name}, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user directory service: {exc}")
        return 1

    if response.status_code != 201:
        print(f"Failed to create user: {_error_message(response)}")
        return 1

    user = response.json()
    print(f"Created user {user['id']}: {user['name']} <{user['email']}> ({user['role']})")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)

    if args.command == "serve":
        settings = _resolve_settings(args)
        configure_logging(settings.log_level, pretty=settings.pretty_logs)
        _serve(settings)
        return 0

    if args.command == "users":
        return _list_users(_service_url(args.service_url))
    if args.command == "create-user":
        return _create_user(_service_url(args.service_url), args.email, args.name)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
