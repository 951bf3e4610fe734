"""eBay seller credential diagnostics. Use --help for usage."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from config.config import SellerConfig, load_config
from core.errors.exceptions import ServiceError
from core.logging.setup import setup_logging
from core.logging.utilities import log_exception
from core.oauth2 import CredentialKind
from core.utils.json_serializers import json_serializer
from ebay_seller.client import EbaySellerClient

# Project root directory (where .env file is located)
# __main__.py is at src/ebay_seller/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def _emit(payload: dict) -> None:
    """Results go to stdout as JSON; logs go to stderr."""
    print(json.dumps(payload, indent=2, default=json_serializer))


async def cmd_token_info(client: EbaySellerClient, args: argparse.Namespace) -> int:
    """Execute token-info command."""
    _emit(client.get_token_info())
    return 0


async def cmd_authorize_url(client: EbaySellerClient, args: argparse.Namespace) -> int:
    """Execute authorize-url command."""
    _emit({"authorization_url": client.get_authorization_url(state=args.state)})
    return 0


async def cmd_exchange_code(client: EbaySellerClient, args: argparse.Namespace) -> int:
    """Execute exchange-code command."""
    pair = await client.exchange_authorization_code(args.code)
    payload = client.get_token_info()
    if args.print_tokens:
        # Tokens are not persisted; printing them is the way to reuse them
        payload["tokens"] = {
            "EBAY_USER_ACCESS_TOKEN": pair.access.value,
            "EBAY_USER_REFRESH_TOKEN": pair.refresh.value,
        }
    _emit(payload)
    return 0


async def cmd_app_token(client: EbaySellerClient, args: argparse.Namespace) -> int:
    """Execute app-token command."""
    credential = await client.coordinator.acquire(CredentialKind.APPLICATION)
    payload = {
        "credential_kind": credential.kind,
        "expires_at": credential.expires_at,
        "remaining_seconds": round(credential.remaining_lifetime.total_seconds(), 1),
        "scopes": credential.scopes,
    }
    if args.print_tokens:
        payload["token"] = credential.value
    _emit(payload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m ebay_seller",
        description="eBay seller API credential diagnostics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Show which credentials are held (no token values)
    python -m ebay_seller token-info

    # Print the consent URL a seller must visit
    python -m ebay_seller authorize-url --state xyz

    # Exchange the code from the redirect for user tokens
    python -m ebay_seller exchange-code 'v%5E1.1%23i%5E1...' --print-tokens

    # Check that the client credentials work
    python -m ebay_seller app-token
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.yaml (default: src/config/config.yaml if present)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: from config, INFO)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Write logs to stderr as JSON lines",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_info = subparsers.add_parser("token-info", help="Show held credentials")
    parser_info.set_defaults(func=cmd_token_info)

    parser_url = subparsers.add_parser("authorize-url", help="Print the seller consent URL")
    parser_url.add_argument("--state", help="Opaque state echoed back on redirect")
    parser_url.set_defaults(func=cmd_authorize_url)

    parser_exchange = subparsers.add_parser(
        "exchange-code", help="Exchange an authorization code for user tokens"
    )
    parser_exchange.add_argument("code", help="Authorization code from the redirect URL")
    parser_exchange.add_argument(
        "--print-tokens", action="store_true", help="Include token values in the output"
    )
    parser_exchange.set_defaults(func=cmd_exchange_code)

    parser_app = subparsers.add_parser("app-token", help="Acquire an application token")
    parser_app.add_argument(
        "--print-tokens", action="store_true", help="Include the token value in the output"
    )
    parser_app.set_defaults(func=cmd_app_token)

    return parser


async def _run(config: SellerConfig, args: argparse.Namespace) -> int:
    async with EbaySellerClient(config) as client:
        return await args.func(client, args)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    # Load environment variables from .env file before any config access
    load_dotenv(PROJECT_ROOT / ".env")

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help(sys.stderr)
        return 1

    try:
        config = load_config(config_path=args.config)
    except (ServiceError, FileNotFoundError) as e:
        setup_logging(level=args.log_level or "INFO", json_format=args.json_logs)
        log_exception(logger, e, "Failed to load configuration", include_traceback=False)
        _emit({"error": str(e)})
        return 1

    setup_logging(
        level=args.log_level or config.log_level,
        json_format=args.json_logs or config.log_json,
        log_file=config.log_file,
        environment=config.environment,
    )

    try:
        return asyncio.run(_run(config, args))
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user")
        return 130
    except ServiceError as e:
        log_exception(logger, e, f"{args.command} failed", include_traceback=False)
        _emit({"error": e.message, "category": e.category.value})
        return 1


if __name__ == "__main__":
    sys.exit(main())
