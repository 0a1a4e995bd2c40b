# shipsync/services/sync/shipment_sync_service.py
# Crawl driver: walks Kurasi shipments by month and page, feeding the reconciler.
import threading
import time
import os
import atexit
from datetime import date, timedelta
from typing import Optional, List, Callable

from shipsync.database import get_db_session
from shipsync.database.buyer_repository import BuyerRepository
from shipsync.domain.sync import (
    CrawlState, SortType, ShipmentPageRequest, SyncRunRequest, SyncRunSummary
)
from shipsync.kurasi_integration import KurasiShipmentService, KurasiAuthService
from shipsync.services.sync.checkpoint_store import CheckpointStore
from shipsync.services.sync.shipment_reconciler import ShipmentReconciler
from shipsync.utils.data_conversion import end_of_month, start_of_month, previous_month_end
from shipsync.utils.logger import logger
from shipsync.api.errors import (
    ApiError, ValidationError, SyncAlreadyRunningError, SyncCancelledError
)
from shipsync.config import config

# --- Scheduler control ---
_sync_thread: Optional[threading.Thread] = None
_stop_sync_event = threading.Event()
_scheduler_started = False
_scheduler_init_lock = threading.Lock()


class ShipmentSyncService:
    """
    Runs one synchronization at a time per process.

    Full mode walks months newest to oldest from the checkpoint (or the end
    date's month), paging each month until a short page, and records the next
    month to crawl after every completed month. Incremental mode fetches a
    single recent window and never touches the checkpoint.
    """
    _lock = threading.Lock()
    _is_running = False

    def __init__(
        self,
        shipment_service: KurasiShipmentService,
        auth_service: KurasiAuthService,
        reconciler: ShipmentReconciler,
        checkpoint_store: CheckpointStore,
        buyer_repository: BuyerRepository,
        sync_start_date: Optional[date] = None,
        full_page_size: Optional[int] = None,
        incremental_page_size: Optional[int] = None,
        lookback_days: Optional[int] = None,
        run_timeout_seconds: Optional[int] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.shipment_service = shipment_service
        self.auth_service = auth_service
        self.reconciler = reconciler
        self.checkpoint_store = checkpoint_store
        self.buyer_repository = buyer_repository
        self.sync_start_date = sync_start_date or config.sync_start_date
        self.full_page_size = full_page_size or config.SYNC_PAGE_SIZE
        self.incremental_page_size = incremental_page_size or config.INCREMENTAL_PAGE_SIZE
        self.lookback_days = lookback_days if lookback_days is not None else config.INCREMENTAL_LOOKBACK_DAYS
        self.run_timeout_seconds = run_timeout_seconds if run_timeout_seconds is not None else config.SYNC_RUN_TIMEOUT_SECONDS
        self._today = today or date.today
        self._cancel_event = threading.Event()
        self.state = CrawlState.IDLE
        self.state_history: List[CrawlState] = []
        self.last_summary: Optional[SyncRunSummary] = None
        logger.info("Shipment sync service initialized.")

    @classmethod
    def is_running(cls) -> bool:
        return cls._is_running

    def cancel(self) -> bool:
        """Requests cancellation of the active run. Returns False when nothing is running."""
        if not ShipmentSyncService._is_running:
            return False
        logger.warning("Cancellation requested for the running shipment sync.")
        self._cancel_event.set()
        return True

    def _transition(self, state: CrawlState):
        self.state = state
        self.state_history.append(state)
        logger.debug(f"Crawl state -> {state.value}")

    def resolve_date_range(self, request: SyncRunRequest) -> tuple[date, date]:
        end = request.end_date or self._today()
        if request.start_date:
            start = request.start_date
        elif request.full_sync:
            start = self.sync_start_date
        else:
            start = end - timedelta(days=self.lookback_days)
        if start > end:
            raise ValidationError(f"startDate {start.isoformat()} is after endDate {end.isoformat()}.")
        return start, end

    def run_sync(self, request: Optional[SyncRunRequest] = None) -> SyncRunSummary:
        """
        Executes one synchronization run.

        Returns:
            SyncRunSummary. A run stopped by a fetch failure, cancellation or
            deadline comes back with aborted=True; progress up to the last
            completed month is kept in the checkpoint.

        Raises:
            SyncAlreadyRunningError: another run is active in this process.
            ValidationError: start date after end date.
        """
        request = request or SyncRunRequest()
        start, end = self.resolve_date_range(request)

        acquired = ShipmentSyncService._lock.acquire(blocking=False)
        if not acquired:
            logger.warning("Shipment sync already running in this process (lock busy). Rejecting call.")
            raise SyncAlreadyRunningError()

        summary = SyncRunSummary(start_date=start, end_date=end, full_sync=request.full_sync)
        started = time.monotonic()
        try:
            ShipmentSyncService._is_running = True
            self._cancel_event = threading.Event()
            self.state_history = []
            self._transition(CrawlState.IDLE)
            mode = "full" if request.full_sync else "incremental"
            logger.info(f"[SYNC START] Shipment sync ({mode}) {start.isoformat()} .. {end.isoformat()}.")

            page_size = request.page_size or (self.full_page_size if request.full_sync else self.incremental_page_size)
            deadline = started + self.run_timeout_seconds if self.run_timeout_seconds else None
            self.shipment_service.start_run(page_size, self._cancel_event, deadline)

            try:
                client_code = self.auth_service.get_client_code()
                if request.clear_existing_buyers:
                    summary.buyers_cleared = self._clear_existing_buyers()
                if request.full_sync:
                    self._run_full(start, end, client_code, summary)
                else:
                    self._crawl_slice(start, end, client_code, summary, SortType.ASC)
                self._transition(CrawlState.DONE)
            except ApiError as e:
                summary.aborted = True
                summary.error = e.message
                summary.error_status = e.status_code
                self._transition(CrawlState.ABORTED)
                level = logger.warning if isinstance(e, SyncCancelledError) else logger.error
                level(f"[SYNC ABORTED] {type(e).__name__}: {e.message}")
            except Exception as e:
                summary.aborted = True
                summary.error = f"Unexpected error: {e}"
                summary.error_status = 500
                self._transition(CrawlState.ABORTED)
                logger.critical(f"[SYNC ABORTED] Unexpected {type(e).__name__}: {e}", exc_info=True)

            summary.duration_seconds = time.monotonic() - started
            summary.final_page_size = self.shipment_service.current_page_size
            logger.info(
                f"[SYNC END] rows={summary.rows_fetched} created={summary.created} updated={summary.updated} "
                f"skipped={summary.skipped} pages={summary.pages_fetched} months={summary.months_completed} "
                f"aborted={summary.aborted} in {self._format_time_duration(summary.duration_seconds)}."
            )
            self.last_summary = summary
            return summary
        finally:
            ShipmentSyncService._is_running = False
            ShipmentSyncService._lock.release()
            logger.debug("Shipment sync lock released.")

    def _clear_existing_buyers(self) -> int:
        with get_db_session() as db:
            removed = self.buyer_repository.clear_unreferenced(db)
        logger.warning(f"clearExistingBuyers: removed {removed['buyers']} buyers and {removed['srns']} SRNs.")
        return removed['buyers']

    def _run_full(self, start: date, end: date, client_code: str, summary: SyncRunSummary):
        lower_bound = start_of_month(start)
        month_end = min(end_of_month(end), end)

        saved = self.checkpoint_store.load()
        if saved is not None:
            if saved < lower_bound:
                logger.info(f"Checkpoint {saved.isoformat()} is before the start boundary. Nothing left to crawl.")
                self.checkpoint_store.clear()
                return
            if saved < month_end:
                logger.info(f"Resuming full crawl from checkpoint {saved.isoformat()}.")
                month_end = saved
            else:
                logger.info(f"Checkpoint {saved.isoformat()} is past the end date. Starting from {month_end.isoformat()}.")

        while month_end >= lower_bound:
            slice_start = max(start_of_month(month_end), start)
            slice_end = min(month_end, end)
            logger.info(f"=== Month {month_end.strftime('%Y-%m')} ({slice_start.isoformat()} .. {slice_end.isoformat()}) ===")
            self._crawl_slice(slice_start, slice_end, client_code, summary, SortType.DESC)

            self._transition(CrawlState.CHECKPOINTING_MONTH)
            next_month_end = previous_month_end(month_end)
            summary.months_completed += 1
            if next_month_end >= lower_bound:
                self.checkpoint_store.save(next_month_end)
            month_end = next_month_end

        self.checkpoint_store.clear()
        logger.info("Full crawl reached the start boundary. Checkpoint cleared.")

    def _crawl_slice(self, slice_start: date, slice_end: date, client_code: str, summary: SyncRunSummary, sort_type: SortType):
        self._transition(CrawlState.SLICING_MONTH)
        index = 0
        while True:
            self.shipment_service.check_cancelled()
            request = ShipmentPageRequest(
                start_date=slice_start,
                end_date=slice_end,
                client_code=client_code,
                index=index,
                limit=self.shipment_service.current_page_size,
                sort_type=sort_type,
            )
            self._transition(CrawlState.FETCHING_PAGE)
            page = self.shipment_service.fetch_page(request)
            summary.pages_fetched += 1
            summary.rows_fetched += len(page.rows)

            self._transition(CrawlState.RECONCILING_PAGE)
            if page.rows:
                batch = self.reconciler.reconcile_page(page.rows)
                summary.absorb(batch)
                logger.info(
                    f"{slice_start.isoformat()}..{slice_end.isoformat()} index={index}: {len(page.rows)} rows "
                    f"(+{batch.created} created, {batch.updated} updated, {batch.skipped} skipped)."
                )

            if page.is_last:
                break
            index += len(page.rows)

    def _format_time_duration(self, seconds: float) -> str:
        if seconds < 60:
            return f"{seconds:.2f} seconds"
        elif seconds < 3600:
            return f"{seconds / 60:.2f} minutes"
        return f"{seconds / 3600:.2f} hours"


# --- Background scheduler ---

def _shipment_sync_task(sync_service: ShipmentSyncService, initial_delay_sec: int, interval_min: int):
    """Body of the background thread: incremental sync every interval_min minutes."""
    logger.info(f"Background shipment sync task started. Initial delay: {initial_delay_sec}s, interval: {interval_min}min.")
    first_run = True
    while not _stop_sync_event.is_set():
        wait_time = initial_delay_sec if first_run else interval_min * 60
        first_run = False

        if _stop_sync_event.wait(timeout=wait_time):
            logger.info("Background shipment sync task interrupted by stop event.")
            break

        try:
            sync_service.run_sync(SyncRunRequest(full_sync=False))
        except SyncAlreadyRunningError:
            logger.info("Scheduled shipment sync skipped: a run is already in progress.")
        except Exception as e:
            logger.error(f"Unhandled error during scheduled shipment sync: {e}", exc_info=True)

    logger.info("Background shipment sync task finished.")


def start_shipment_sync_scheduler(sync_service: ShipmentSyncService, initial_delay_sec: int = 30, interval_min: Optional[int] = None):
    """Starts the background sync thread if it is not already running."""
    global _sync_thread, _scheduler_started
    interval_min = interval_min or config.SYNC_INTERVAL_MINUTES

    if _sync_thread and _sync_thread.is_alive():
        logger.warning("Shipment sync scheduler thread is already running in this process.")
        return

    with _scheduler_init_lock:
        if _scheduler_started:
            logger.info("Shipment sync scheduler already started. Not starting again.")
            return

        # Under the Werkzeug reloader only the child process runs the scheduler
        if config.APP_DEBUG and os.environ.get('WERKZEUG_RUN_MAIN') != 'true':
            logger.info(f"Debug mode: process {os.getpid()} is not the reloader child. Scheduler not started.")
            return

        _stop_sync_event.clear()
        _sync_thread = threading.Thread(
            target=_shipment_sync_task,
            args=(sync_service, initial_delay_sec, interval_min),
            daemon=True,
            name="shipment-sync-scheduler",
        )
        _sync_thread.start()
        _scheduler_started = True
        logger.info(f"Shipment sync scheduler thread started by PID {os.getpid()}.")
        atexit.register(stop_shipment_sync_scheduler)


def stop_shipment_sync_scheduler(sync_service: Optional[ShipmentSyncService] = None):
    """Stops the background sync thread, cancelling an in-flight run when a service is given."""
    global _sync_thread, _scheduler_started

    _stop_sync_event.set()
    if sync_service is not None:
        sync_service.cancel()

    if _sync_thread and _sync_thread.is_alive():
        logger.info("Waiting for the shipment sync scheduler thread to finish...")
        _sync_thread.join(timeout=15)
        if _sync_thread.is_alive():
            logger.warning("Shipment sync scheduler thread did not stop within 15s.")
        else:
            logger.info("Shipment sync scheduler thread stopped.")
        _sync_thread = None
    else:
        logger.debug("Shipment sync scheduler thread is not running.")

    _scheduler_started = False


def is_scheduler_running() -> bool:
    return bool(_sync_thread and _sync_thread.is_alive())
