# duf-serve/duf_shared/config.py

import os
import argparse
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional
import logging

# Set up a logger for this module
logger = logging.getLogger(__name__)

DEFAULT_BIND = "0.0.0.0"
DEFAULT_PORT = 5000

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    root: Path
    auth: Optional[str] = None
    no_auth_read: bool = False
    readonly: bool = False
    cors: bool = False
    address: str = DEFAULT_BIND
    port: int = DEFAULT_PORT


def env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in TRUTHY


def build_parser() -> argparse.ArgumentParser:
    """
    Command line flags. Every flag falls back to its environment variable,
    so the server can be configured either way.
    """
    parser = argparse.ArgumentParser(
        prog="duf-serve",
        description="Serve a directory over HTTP: browse, download, zip, search, upload and delete.",
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=os.environ.get("DUF_PATH", "."),
        help="Directory to serve (env: DUF_PATH)",
    )
    parser.add_argument(
        "-b", "--bind",
        default=os.environ.get("DUF_BIND", DEFAULT_BIND),
        help="Address to bind (env: DUF_BIND)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=int(os.environ.get("HTTP_PORT", DEFAULT_PORT)),
        help="Port to listen on (env: HTTP_PORT)",
    )
    parser.add_argument(
        "-a", "--auth",
        default=os.environ.get("DUF_AUTH") or None,
        metavar="USER:PASS",
        help="Require HTTP Basic auth with this credential (env: DUF_AUTH)",
    )
    parser.add_argument(
        "--no-auth-read",
        action="store_true",
        default=env_flag("DUF_NO_AUTH_READ"),
        help="Allow anonymous GET requests when --auth is set (env: DUF_NO_AUTH_READ)",
    )
    parser.add_argument(
        "-r", "--readonly",
        action="store_true",
        default=env_flag("DUF_READONLY"),
        help="Refuse uploads and deletes (env: DUF_READONLY)",
    )
    parser.add_argument(
        "--cors",
        action="store_true",
        default=env_flag("DUF_CORS"),
        help="Add permissive CORS headers to every response (env: DUF_CORS)",
    )
    return parser


def load_settings(argv: Optional[List[str]] = None) -> Settings:
    """Parse arguments and environment into an immutable Settings value."""
    args = build_parser().parse_args(argv)

    root = Path(os.path.abspath(args.path))
    if not root.is_dir():
        raise ValueError(f"Path {root} is not an existing directory")

    if args.auth is not None and ":" not in args.auth:
        logger.warning("Auth credential has no ':' separator; it is compared verbatim anyway")

    settings = Settings(
        root=root,
        auth=args.auth,
        no_auth_read=args.no_auth_read,
        readonly=args.readonly,
        cors=args.cors,
        address=args.bind,
        port=args.port,
    )
    logger.info(f"Serving {settings.root} (readonly={settings.readonly}, auth={'on' if settings.auth else 'off'})")
    return settings
