"""Entry point for running the purchase core against the local store gateway."""

import argparse
import asyncio
import json
import os
import sys

from iap_entitlements.config import ConfigurationError, get_config
from iap_entitlements.logging_config import configure_logging, get_logger
from iap_entitlements.models import ProductCategory
from iap_entitlements.services.local_gateway import LocalStoreGateway
from iap_entitlements.services.store_service import StoreService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="IAP entitlements - run purchases against the local store gateway"
    )
    parser.add_argument(
        "--config",
        default=os.getenv("STORE_CONFIG_PATH", "config/store.yaml"),
        help="Path to store.yaml configuration file (default: config/store.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "WARNING"),
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "console"],
        default=os.getenv("LOG_FORMAT", "console"),
        help="Log output format (default: console)",
    )
    parser.add_argument(
        "--buy",
        action="append",
        default=[],
        metavar="PRODUCT_ID",
        help="Purchase a product (repeatable)",
    )
    parser.add_argument(
        "--consume",
        action="append",
        default=[],
        metavar="PRODUCT_ID",
        help="Spend one unit of a consumable (repeatable)",
    )
    return parser


async def run(args: argparse.Namespace) -> dict:
    """Start the service, apply the requested actions and summarize the state."""
    config = get_config(args.config)
    gateway = LocalStoreGateway(config.local_catalog)
    service = StoreService.from_config(gateway, config)

    await service.start()
    try:
        purchases = {}
        for product_id in args.buy:
            status = await service.purchase(product_id)
            purchases[product_id] = str(status)

        consumed = {product_id: service.consume(product_id) for product_id in args.consume}

        return {
            "catalog": {
                c.value: [p.id for p in service.products(c)] for c in ProductCategory
            },
            "purchases": purchases,
            "consumed": consumed,
            "purchased": {
                c.value: sorted(service.entitlements.for_category(c))
                for c in ProductCategory
                if c != ProductCategory.CONSUMABLE
            },
            "balances": service.balances(),
            "pending": sorted(service.pending_product_ids),
        }
    finally:
        await service.shutdown()


def main() -> None:
    """Main entry point."""
    args = build_parser().parse_args()

    os.environ["LOG_LEVEL"] = args.log_level
    configure_logging(log_level=args.log_level, json_format=args.log_format == "json")
    logger = get_logger(__name__)

    try:
        summary = asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nShutting down...")
        sys.exit(0)
    except Exception as e:
        logger.error("run_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
        sys.exit(1)

    print(json.dumps(summary, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
