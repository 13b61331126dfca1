# farmconnect/scripts/remove_duplicate_orders.py
# Remove duplicate orders from the orders collection.
# Run with: farmconnect-remove-duplicates [--dry-run] [--keep-first]

import argparse
import logging
import sys
from typing import List, Optional

from pymongo.errors import PyMongoError

from farmconnect.app_config import configure_logging, load_config
from farmconnect.errors import PartialFailure, StoreUnavailable
from farmconnect.mongo import init_mongo
from farmconnect.services.marketplace.duplicate_cleanup import DuplicateOrderCleanup
from farmconnect.store import DocumentStore
from farmconnect.store.mongo_store import MongoDocumentStore

logger = logging.getLogger("remove_duplicate_orders")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find and delete duplicate marketplace orders.")
    parser.add_argument("--mongo-uri", default=None, help="overrides MONGO_URI")
    parser.add_argument(
        "--keep-first",
        action="store_true",
        help="keep the first scanned order of each group instead of the most recent",
    )
    parser.add_argument("--dry-run", action="store_true", help="report duplicates without deleting")
    return parser


def main(argv: Optional[List[str]] = None, store: Optional[DocumentStore] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    configure_logging(config["LOG_LEVEL"])

    if args.mongo_uri:
        config["MONGO_URI"] = args.mongo_uri

    if store is None:
        try:
            store = MongoDocumentStore(init_mongo(config))
        except (ValueError, PyMongoError) as e:
            logger.error("Cannot connect to the orders database: %s", e)
            return 2

    try:
        report = DuplicateOrderCleanup(store).cleanup(
            keep_most_recent=not args.keep_first,
            dry_run=args.dry_run,
        )
        report.raise_for_failures()
    except StoreUnavailable as e:
        logger.error("Error removing duplicate orders: %s", e)
        return 2
    except PartialFailure as e:
        logger.error("%s: %s", e.message, ", ".join(e.failed_ids))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
