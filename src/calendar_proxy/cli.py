"""Command-line interface for the calendar proxy."""

import argparse
import logging
import sys

from calendar_proxy.config import get_settings, is_token
from calendar_proxy.crypto.token import SecretKeys, decode
from calendar_proxy.errors import DecodeError


def check_config() -> int:
    """Validate the secret and every configured token without printing plaintext."""
    settings = get_settings()

    if not settings.encryption_key:
        print("ENCRYPTION_KEY not configured")
        return 1

    try:
        SecretKeys.from_secret(settings.encryption_key)
    except DecodeError as e:
        print(f"ENCRYPTION_KEY invalid: {e.reason}")
        return 1

    sources = settings.source_list
    failures = 0
    for index, source in enumerate(sources, start=1):
        if not is_token(source):
            print(f"source {index}: plain URL")
            continue
        try:
            decode(source, settings.encryption_key)
        except DecodeError as e:
            failures += 1
            print(f"source {index}: token INVALID ({e.reason})")
        else:
            print(f"source {index}: token ok")

    print(f"{len(sources)} source(s) configured, {failures} invalid")
    return 1 if failures else 0


def serve(host: str | None, port: int | None, reload: bool) -> int:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "calendar_proxy.api:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Calendar Proxy - Hide calendar source URLs from a hosted calendar renderer"
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 0.1.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the proxy server")
    serve_parser.add_argument("--host", help="Bind address (default: HOST setting)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: PORT setting)")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development only)",
    )

    # Check-config command
    subparsers.add_parser(
        "check-config", help="Validate the encryption key and configured tokens"
    )

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "serve":
        return serve(args.host, args.port, args.reload)

    return check_config()


if __name__ == "__main__":
    sys.exit(main())
