#!/usr/bin/env python3
"""Entry point for the sponsor relay HTTP service.

Loads configuration from the environment (and a .env file, if present)
and serves the relay API with uvicorn.
"""

import argparse
import asyncio
import logging
import os
import sys

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

import uvicorn
from dotenv import load_dotenv

from sponsor_relay.api import create_app
from sponsor_relay.config import RelayConfig


async def main() -> None:
    """Main entry point for the sponsor relay service.

    Parses startup arguments, loads configuration from environment,
    and serves the HTTP API until interrupted.

    Raises:
        SystemExit: On configuration or runtime errors
    """
    load_dotenv()

    # Parse startup arguments
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Sponsor Relay - Pay fees for eligible pre-signed transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  RPC_URL                  - Ledger RPC endpoint (http/https)
  SPONSOR_CONTRACT_ADDRESS - Contract exposing sponsor(bytes)
  ASSET_CONTRACT_ADDRESS   - ERC-20 whose transfers qualify
  PRIVATE_KEY              - Relayer private key
  MINIMUM_FEE_ALERT        - Balance alert threshold in ether (default: 1)
  FETCH_BALANCE_TX_TIMES   - Balance sampling interval (default: 100)
  TELEGRAM_BOT_TOKEN       - Telegram bot token (optional)
  TELEGRAM_CHAT_ID         - Telegram chat id (optional)
  DATABASE_PATH            - SQLite transaction log (default: data/sponsor_relay.db)
  REDIS_URL                - Redis for sampling counters (optional)
  SIDE_CHANNEL_TIMEOUT     - Seconds per persistence or alert step (default: 5)
  HOST / PORT              - Bind address (default: 0.0.0.0:8080)
  LOG_LEVEL                - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Override the HOST environment variable"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Override the PORT environment variable"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    args: argparse.Namespace = parser.parse_args()

    # Set up logging with specified level
    setup_logging(args.log_level)

    logger.info("=== Sponsor Relay Starting ===")
    logger.info("Loading configuration from environment...")

    try:
        config: RelayConfig = RelayConfig.from_env()
        logger.info("Configuration loaded successfully")

        app = create_app(config)

        uvicorn_config = uvicorn.Config(
            app,
            host=args.host or config.server.host,
            port=args.port or config.server.port,
            log_level=args.log_level.lower(),
        )
        server = uvicorn.Server(uvicorn_config)
        await server.serve()

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - SPONSOR_CONTRACT_ADDRESS: Contract exposing sponsor(bytes)")
        logger.error("  - ASSET_CONTRACT_ADDRESS: ERC-20 whose transfers qualify")
        logger.error("  - PRIVATE_KEY: Relayer private key (64 hex characters)")
        logger.error("  - RPC_URL: Ledger RPC endpoint (http/https)")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down gracefully...")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    # Run the main async function
    asyncio.run(main())
