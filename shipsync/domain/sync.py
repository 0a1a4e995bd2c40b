# shipsync/domain/sync.py
# Dataclasses describing shipment fetch requests, reconciliation outcomes and sync runs.

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, List, Dict, Any


class SortType(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class CrawlState(str, Enum):
    IDLE = "IDLE"
    SLICING_MONTH = "SLICING_MONTH"
    FETCHING_PAGE = "FETCHING_PAGE"
    RECONCILING_PAGE = "RECONCILING_PAGE"
    CHECKPOINTING_MONTH = "CHECKPOINTING_MONTH"
    DONE = "DONE"
    ABORTED = "ABORTED"


class SkipReason(str, Enum):
    MISSING_IDENTIFIER = "MISSING_IDENTIFIER"
    INVALID_PHONE = "INVALID_PHONE"
    MISSING_COUNTRY = "MISSING_COUNTRY"
    ERROR = "ERROR"


class OutcomeStatus(str, Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    SKIPPED = "SKIPPED"


@dataclass
class ShipmentPageRequest:
    """One page of POST /api/v1/shipmentManagement."""
    start_date: date
    end_date: date
    client_code: str = ""
    index: int = 0
    limit: int = 800
    sort_type: SortType = SortType.DESC
    flag_text: str = "All"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "clientCode": self.client_code,
            "sortType": self.sort_type.value,
            "flagText": self.flag_text,
            "saleRecordNumber": "",
            "kurasiShipmentId": "",
            "country": [],
            "serviceName": [],
            "saleChannel": [],
            "index": self.index,
            "limit": self.limit,
        }


@dataclass
class ShipmentPage:
    rows: List[Dict[str, Any]]
    requested_limit: int  # limit actually sent, may be smaller than asked for
    total: Optional[int] = None
    attempts: int = 1

    @property
    def is_last(self) -> bool:
        return len(self.rows) < self.requested_limit


@dataclass
class RowOutcome:
    """Result of reconciling one row: reconciled (created/updated) or skipped with a reason."""
    status: OutcomeStatus
    skip_reason: Optional[SkipReason] = None
    buyer_id: Optional[int] = None
    sale_record_number: Optional[int] = None
    kurasi_shipment_id: Optional[str] = None
    phone_best_effort: bool = False
    detail: Optional[str] = None
    buyer_skip_reason: Optional[SkipReason] = None  # set when the row was stored without a buyer link

    @classmethod
    def skipped(cls, reason: SkipReason, detail: Optional[str] = None, **kwargs) -> "RowOutcome":
        return cls(status=OutcomeStatus.SKIPPED, skip_reason=reason, detail=detail, **kwargs)


@dataclass
class ReconcileBatchResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    best_effort_phones: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    buyer_skip_reasons: Counter = field(default_factory=Counter)
    outcomes: List[RowOutcome] = field(default_factory=list)

    def add(self, outcome: RowOutcome):
        self.outcomes.append(outcome)
        if outcome.status is OutcomeStatus.CREATED:
            self.created += 1
        elif outcome.status is OutcomeStatus.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1
            self.skip_reasons[outcome.skip_reason.value] += 1
        if outcome.status is not OutcomeStatus.SKIPPED and outcome.buyer_skip_reason is not None:
            self.buyer_skip_reasons[outcome.buyer_skip_reason.value] += 1
        if outcome.phone_best_effort:
            self.best_effort_phones += 1


@dataclass
class SyncRunRequest:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    full_sync: bool = False
    clear_existing_buyers: bool = False
    page_size: Optional[int] = None


@dataclass
class SyncRunSummary:
    start_date: date
    end_date: date
    full_sync: bool = False
    rows_fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    best_effort_phones: int = 0
    skip_reasons: Counter = field(default_factory=Counter)
    buyer_skip_reasons: Counter = field(default_factory=Counter)
    pages_fetched: int = 0
    months_completed: int = 0
    buyers_cleared: int = 0
    aborted: bool = False
    error: Optional[str] = None
    error_status: Optional[int] = None  # HTTP status of the aborting error
    duration_seconds: float = 0.0
    final_page_size: Optional[int] = None

    def absorb(self, batch: ReconcileBatchResult):
        self.created += batch.created
        self.updated += batch.updated
        self.skipped += batch.skipped
        self.best_effort_phones += batch.best_effort_phones
        self.skip_reasons.update(batch.skip_reasons)
        self.buyer_skip_reasons.update(batch.buyer_skip_reasons)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rowsFetched": self.rows_fetched,
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "skipReasons": dict(self.skip_reasons),
            "buyerSkipReasons": dict(self.buyer_skip_reasons),
            "bestEffortPhones": self.best_effort_phones,
            "pagesFetched": self.pages_fetched,
            "monthsCompleted": self.months_completed,
            "buyersCleared": self.buyers_cleared,
            "fullSync": self.full_sync,
            "dateRangeProcessed": {
                "startDate": self.start_date.isoformat(),
                "endDate": self.end_date.isoformat(),
            },
            "aborted": self.aborted,
            "error": self.error,
            "durationSeconds": round(self.duration_seconds, 2),
            "finalPageSize": self.final_page_size,
        }
