# shipsync/services/sale_record_service.py
# Lookups on sale record numbers (SRNs) used by the order and buyer forms.

import re
from typing import Dict, Any, Optional

from shipsync.database import get_db_session
from shipsync.database.sale_record_repository import SaleRecordRepository
from shipsync.utils.data_conversion import clean_str, parse_positive_int
from shipsync.utils.logger import logger
from shipsync.api.errors import ValidationError, NotFoundError

_KRS_PATTERN = re.compile(r"^KRS", re.IGNORECASE)


class SaleRecordService:

    def __init__(self, sale_record_repository: SaleRecordRepository):
        self.sale_record_repository = sale_record_repository
        logger.info("SaleRecordService initialized.")

    def check_srn(self, srn_raw: Any, exclude_buyer_id_raw: Any = None) -> Dict[str, Any]:
        """
        Whether an SRN is already taken, optionally ignoring SRNs of one buyer
        (the buyer being edited).

        Raises:
            ValidationError: srn or excludeBuyerId is not a positive integer.
        """
        srn = parse_positive_int(srn_raw)
        if srn is None:
            raise ValidationError("srn must be a positive integer.", payload={'field': ['srn']})

        exclude_buyer_id: Optional[int] = None
        if clean_str(exclude_buyer_id_raw) is not None:
            exclude_buyer_id = parse_positive_int(exclude_buyer_id_raw)
            if exclude_buyer_id is None:
                raise ValidationError("excludeBuyerId must be a positive integer.", payload={'field': ['excludeBuyerId']})

        with get_db_session() as db:
            exists = self.sale_record_repository.exists(db, srn, exclude_buyer_id)
        logger.debug(f"SRN check {srn} (exclude buyer {exclude_buyer_id}): exists={exists}")
        return {'exists': exists, 'srn': srn}

    def lookup_srn(self, key: str) -> Dict[str, Any]:
        """
        Finds a sale record by numeric SRN or by Kurasi shipment id (KRS...),
        returning it with its buyer.
        """
        raw = (key or "").strip()
        is_krs = bool(_KRS_PATTERN.match(raw))
        srn = None if is_krs else parse_positive_int(raw)
        if not is_krs and srn is None:
            raise ValidationError("Invalid key. Use numeric SRN or a KRS... id.")

        with get_db_session() as db:
            if is_krs:
                record = self.sale_record_repository.find_by_shipment_id(db, raw, with_buyer=True)
            else:
                record = self.sale_record_repository.get(db, srn, with_buyer=True)
            if record is None:
                raise NotFoundError(f"Sale record '{raw}' not found.")
            result = record.to_dict()
            result['buyer'] = record.buyer.to_dict() if record.buyer else None
        return result
