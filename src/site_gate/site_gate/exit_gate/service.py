from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from ..common.datetime_utils import now_local
from ..core.exceptions import ExitDeniedError, NotFoundError, VisitClosedError
from ..custody.service import CustodyService
from ..visits.model import Visit
from ..visits.repository import VisitRepository
from .model import ExitDecision
from .rules import evaluate

logger = logging.getLogger(__name__)


class ExitService:
    """Use case: close a visit once the exit gate passes."""

    def __init__(self, visits: VisitRepository, custody: CustodyService):
        self._visits = visits
        self._custody = custody

    def _open_visit(self, visit_id: int, site_id: Optional[int]) -> Visit:
        visit = self._visits.get_by_id(int(visit_id))
        if not visit or (site_id is not None and visit.site_id != int(site_id)):
            raise NotFoundError("Visit record does not exist")
        if not visit.is_open:
            raise VisitClosedError(
                f"Visit {visit.visit_id} is already closed",
                details={"visitId": visit.visit_id, "status": visit.status.value},
            )
        return visit

    def can_exit(
        self,
        visit_id: int,
        *,
        physical_card_returned: bool,
        unreturned_item_remarks: Optional[Mapping[str, str]] = None,
        site_id: Optional[int] = None,
    ) -> ExitDecision:
        visit = self._open_visit(visit_id, site_id)
        return evaluate(self._custody.open_items_for_visit(visit.visit_id), physical_card_returned, unreturned_item_remarks)

    def check_out(
        self,
        visit_id: int,
        *,
        physical_card_returned: bool,
        unreturned_item_remarks: Optional[Mapping[str, str]] = None,
        check_out_time: Optional[datetime] = None,
        site_id: Optional[int] = None,
    ) -> Visit:
        visit = self._open_visit(visit_id, site_id)
        remarks = dict(unreturned_item_remarks or {})

        open_items = self._custody.open_items_for_visit(visit.visit_id)
        decision = evaluate(open_items, physical_card_returned, remarks)
        if not decision.allowed:
            logger.info(
                "exit denied visit=%s worker=%s rules=%s",
                visit.visit_id, visit.worker_code, ",".join(v.rule for v in decision.violations),
            )
            raise ExitDeniedError(decision.violations)

        exit_remarks = {item.record_id: remarks[item.item_code].strip() for item in open_items}
        when = check_out_time or now_local()

        if not self._visits.close(visit_id=visit.visit_id, check_out_time=when, exit_remarks=exit_remarks):
            # Another gate closed it between our read and the conditional update.
            raise VisitClosedError(f"Visit {visit.visit_id} is already closed", details={"visitId": visit.visit_id})

        logger.info(
            "check-out visit=%s worker=%s unreturned=%s",
            visit.visit_id, visit.worker_code, len(exit_remarks),
        )
        closed = self._visits.get_by_id(visit.visit_id)
        if closed is None:
            raise NotFoundError("Visit record does not exist")
        return closed
