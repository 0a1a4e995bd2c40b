# shipsync/cli.py
# Command-line entry for a resumable full Kurasi crawl, without the HTTP server.
#
# Usage:
#   shipsync-crawl                              # resume (or start) the full crawl
#   shipsync-crawl --start 2024-01-01 --end 2024-12-31 --page-size 400
#   shipsync-crawl --reset-checkpoint           # forget saved progress first

import argparse
import json
import sys
from datetime import date
from typing import Optional, List

from shipsync.config import config
from shipsync.database import init_sqlalchemy, dispose_sqlalchemy_engine
from shipsync.database.buyer_repository import BuyerRepository
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.database.shipment_mirror_repository import ShipmentMirrorRepository
from shipsync.database.order_repository import OrderRepository
from shipsync.domain.sync import SyncRunRequest
from shipsync.kurasi_integration import KurasiAuthService, KurasiShipmentService
from shipsync.services.sync import ShipmentReconciler, ShipmentSyncService, build_checkpoint_store
from shipsync.utils.logger import logger, configure_logger


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{value}' is not a YYYY-MM-DD date")


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resumable full crawl of Kurasi shipments")
    parser.add_argument("--start", type=_iso_date, help=f"Oldest date to crawl (default {config.SYNC_START_DATE})")
    parser.add_argument("--end", type=_iso_date, help="Newest date to crawl (default today)")
    parser.add_argument("--page-size", type=_positive_int, help=f"Rows per request (default {config.SYNC_PAGE_SIZE})")
    parser.add_argument("--reset-checkpoint", action="store_true", help="Discard saved progress before crawling")
    parser.add_argument("--clear-buyers", action="store_true", help="Delete buyers and SRNs not linked to orders first")
    return parser


def build_sync_service(auth_service: Optional[KurasiAuthService] = None) -> ShipmentSyncService:
    engine = init_sqlalchemy(config.SQLALCHEMY_DATABASE_URI)
    buyer_repo = BuyerRepository(engine)
    srn_repo = SaleRecordRepository(engine)
    reconciler = ShipmentReconciler(buyer_repo, srn_repo, ShipmentMirrorRepository(engine), OrderRepository(engine))
    auth_service = auth_service or KurasiAuthService()
    return ShipmentSyncService(
        KurasiShipmentService(auth_service),
        auth_service,
        reconciler,
        build_checkpoint_store(config, engine),
        buyer_repo,
    )


def main(argv: Optional[List[str]] = None, sync_service: Optional[ShipmentSyncService] = None) -> int:
    """Returns the process exit code: 0 done, 1 aborted."""
    args = build_parser().parse_args(argv)
    configure_logger(config.LOG_LEVEL)

    owns_engine = sync_service is None
    service = sync_service or build_sync_service()
    try:
        if args.reset_checkpoint:
            service.checkpoint_store.clear()
            logger.info("Checkpoint reset by request.")

        summary = service.run_sync(SyncRunRequest(
            start_date=args.start,
            end_date=args.end,
            full_sync=True,
            clear_existing_buyers=args.clear_buyers,
            page_size=args.page_size,
        ))
        print(json.dumps(summary.to_dict(), indent=2))
        return 1 if summary.aborted else 0
    finally:
        if owns_engine:
            dispose_sqlalchemy_engine()


if __name__ == "__main__":
    sys.exit(main())
