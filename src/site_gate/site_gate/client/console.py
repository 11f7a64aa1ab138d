from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Mapping, Optional, Sequence

from ..core.exceptions import (
    ActionInFlightError,
    ExitDeniedError,
    NoOpenVisitError,
    NotOnSiteError,
    ValidationError,
)
from ..custody.model import BorrowBatchResult, ItemCategory, ReturnOutcome, StagedItem
from ..exit_gate.model import ExitDecision
from ..exit_gate.rules import evaluate
from ..reports.model import SiteStats
from ..visits.model import Visit
from .api_client import GateApiClient, OpenVisitView

logger = logging.getLogger(__name__)


class GateConsole:
    """Operator-side state for the three gate flows: entry, borrow/return, exit.

    Only one action runs at a time; a second trigger while one is pending
    raises ActionInFlightError. Cached views change only after the service
    confirms, so a failed call leaves the screen as it was.
    """

    def __init__(self, api: GateApiClient):
        self._api = api
        self._busy = threading.Lock()
        self._previous_on_unauthorized = api.on_unauthorized
        api.on_unauthorized = self._forced_logout

        self.current: Optional[OpenVisitView] = None
        self.staged: list[StagedItem] = []
        self.categories: list[ItemCategory] = []
        self.stats: Optional[SiteStats] = None
        self.logged_in = api.token is not None

    # -------- plumbing --------
    @contextmanager
    def _action(self, name: str):
        if not self._busy.acquire(blocking=False):
            raise ActionInFlightError(f"Please wait: {name} is blocked while another action is in progress")
        try:
            yield
        finally:
            self._busy.release()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def _forced_logout(self) -> None:
        logger.info("session expired; clearing console state")
        self.logged_in = False
        self.current = None
        self.staged = []
        self.stats = None
        if self._previous_on_unauthorized is not None:
            self._previous_on_unauthorized()

    def _require_open_visit(self) -> OpenVisitView:
        if self.current is None or self.current.visit is None or not self.current.visit.is_open:
            raise NotOnSiteError("Scan a worker who is on site first")
        return self.current

    # -------- session --------
    def login(self, username: str, password: str) -> dict:
        with self._action("login"):
            guard = self._api.login(username, password)
            self.logged_in = True
            self.categories = self._api.list_categories()
            return guard

    def refresh_stats(self) -> SiteStats:
        with self._action("refresh"):
            self.stats = self._api.stats()
            return self.stats

    # -------- lookup --------
    def scan(self, identifier: str) -> OpenVisitView:
        """Resolve a scanned badge or card; `visit` is None when the worker is off site."""
        with self._action("scan"):
            try:
                view = self._api.find_open_visit(identifier)
            except NoOpenVisitError:
                view = OpenVisitView(worker=self._api.lookup_worker(identifier), visit=None)
            self.current = view
            self.staged = []
            return view

    # -------- entry --------
    def register_entry(
        self,
        worker_code: str,
        physical_card_id: str,
        *,
        id_type: Optional[str] = None,
        id_number: Optional[str] = None,
        phone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Visit:
        with self._action("check-in"):
            visit = self._api.check_in(
                worker_code, physical_card_id, id_type=id_type, id_number=id_number, phone=phone, notes=notes
            )
            worker = self.current.worker if self.current and self.current.worker.worker_code == visit.worker_code else None
            if worker is None:
                worker = self._api.lookup_worker(visit.worker_code)
            self.current = OpenVisitView(worker=worker, visit=visit, open_items=())
            self.staged = []
            return visit

    # -------- borrow / return --------
    def stage_item(self, category_id: str, item_code: str, notes: Optional[str] = None) -> list[StagedItem]:
        category_id = str(category_id or "").strip()
        item_code = str(item_code or "").strip()
        if not category_id or not item_code:
            raise ValidationError("Category and item code are required")
        if any(s.category.upper() == category_id.upper() and s.item_code == item_code for s in self.staged):
            raise ValidationError(f"Item {category_id}/{item_code} is already staged", code="DUPLICATE_ITEM")
        self.staged.append(StagedItem(category=category_id, item_code=item_code, notes=notes))
        return list(self.staged)

    def unstage(self, index: int) -> list[StagedItem]:
        del self.staged[index]
        return list(self.staged)

    def commit_borrow(self) -> BorrowBatchResult:
        """Submit staged items against the current visit. Failed items stay staged."""
        view = self._require_open_visit()
        if not self.staged:
            raise ValidationError("No items staged")

        with self._action("borrow"):
            result = self._api.borrow_batch(view.worker.worker_code, self.staged, visit_id=view.visit.visit_id)
            failed = {o.index for o in result.failed}
            self.staged = [item for i, item in enumerate(self.staged) if i in failed]
            self.current = OpenVisitView(
                worker=view.worker, visit=view.visit, open_items=tuple(view.open_items) + tuple(result.created)
            )
            return result

    def return_items(self, record_ids: Sequence[int]) -> list[ReturnOutcome]:
        with self._action("return"):
            outcomes = self._api.return_many(record_ids)
            if self.current is not None:
                done = {o.record_id for o in outcomes if o.ok}
                self.current = OpenVisitView(
                    worker=self.current.worker,
                    visit=self.current.visit,
                    open_items=tuple(r for r in self.current.open_items if r.record_id not in done),
                )
            return outcomes

    # -------- exit --------
    def exit_decision(self, *, physical_card_returned: bool, remarks: Optional[Mapping[str, str]] = None) -> ExitDecision:
        """Advisory gate run locally; the service evaluates again on check-out."""
        view = self._require_open_visit()
        return evaluate(view.open_items, physical_card_returned, remarks)

    def check_out(self, *, physical_card_returned: bool, remarks: Optional[Mapping[str, str]] = None) -> Visit:
        view = self._require_open_visit()
        decision = evaluate(view.open_items, physical_card_returned, remarks)
        if not decision.allowed:
            raise ExitDeniedError(decision.violations)

        held = {r.item_code for r in view.open_items}
        submitted = {code: text.strip() for code, text in (remarks or {}).items() if code in held}

        with self._action("check-out"):
            visit = self._api.check_out(
                view.visit.visit_id, physical_card_returned=physical_card_returned, remarks=submitted
            )
            self.current = None
            self.staged = []
            return visit
