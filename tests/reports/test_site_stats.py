from __future__ import annotations

from datetime import timedelta

SITE_ID = 1


def test_snapshot_counts(gate, fixed_now):
    yesterday = fixed_now - timedelta(days=1)
    old = gate.visit_service.check_in(worker_code="W100", site_id=SITE_ID, physical_card_id="C1", registrar_id=7, now=yesterday)
    gate.custody_service.borrow(visit_id=old.visit_id, worker_pk=1, category="HELMET", item_code="H1", now=yesterday)
    gate.exit_service.check_out(
        old.visit_id, physical_card_returned=True, unreturned_item_remarks={"H1": "lost"}, check_out_time=fixed_now
    )

    today = gate.visit_service.check_in(
        worker_code="W200", site_id=SITE_ID, physical_card_id="C2", registrar_id=7, contact_phone="1", now=fixed_now
    )
    rec = gate.custody_service.borrow(visit_id=today.visit_id, worker_pk=2, category="VEST", item_code="V1", now=fixed_now)
    gate.custody_service.borrow(visit_id=today.visit_id, worker_pk=2, category="VEST", item_code="V2", now=fixed_now)
    gate.custody_service.return_one(rec.record_id, now=fixed_now)

    gate.visit_service.check_in(worker_code="W100", site_id=2, physical_card_id="X", registrar_id=9, now=fixed_now)

    stats = gate.stats_service.snapshot(SITE_ID, fixed_now.date())

    assert stats.on_site_count == 1
    assert stats.entered_today == 1
    assert stats.exited_today == 1
    assert stats.borrowed_today == 2
    # backlog: yesterday's unreturned helmet plus today's V2
    assert stats.pending_return == 2
