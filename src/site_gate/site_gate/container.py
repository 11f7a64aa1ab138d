from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .custody.mysql_custody_repository import MySQLBorrowRepository, MySQLCategoryRepository
from .custody.repository import BorrowRepository, CategoryRepository
from .custody.service import CustodyService
from .database.connection import DBConfig, DatabaseConnection
from .exit_gate.service import ExitService
from .guards.mysql_guard_repository import MySQLGuardRepository
from .guards.repository import GuardRepository
from .guards.service import AuthService
from .notifications.dispatch_queue import DispatchQueue
from .notifications.sender import LoggingSender
from .reports.reconciliation import ReconciliationService
from .reports.stats import StatsService
from .visits.mysql_visit_repository import MySQLVisitRepository
from .visits.repository import VisitRepository
from .visits.service import VisitService
from .workers.mysql_worker_repository import MySQLWorkerRepository
from .workers.repository import WorkerRepository
from .workers.service import DirectoryService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    workers_repo: WorkerRepository
    visits_repo: VisitRepository
    categories_repo: CategoryRepository
    borrows_repo: BorrowRepository
    guards_repo: GuardRepository

    auth_service: AuthService
    directory_service: DirectoryService
    visit_service: VisitService
    custody_service: CustodyService
    exit_service: ExitService
    reconciliation_service: ReconciliationService
    stats_service: StatsService
    dispatch_queue: DispatchQueue


def wire(
    *,
    workers: WorkerRepository,
    visits: VisitRepository,
    categories: CategoryRepository,
    borrows: BorrowRepository,
    guards: GuardRepository,
    auth_service: AuthService,
    dispatch_queue: DispatchQueue,
    conn: Optional[DatabaseConnection] = None,
) -> Container:
    """Build the services on top of any repository implementations."""
    directory = DirectoryService(workers, visits)
    custody = CustodyService(borrows, categories, visits, directory)

    return Container(
        conn=conn,
        workers_repo=workers,
        visits_repo=visits,
        categories_repo=categories,
        borrows_repo=borrows,
        guards_repo=guards,
        auth_service=auth_service,
        directory_service=directory,
        visit_service=VisitService(visits, directory),
        custody_service=custody,
        exit_service=ExitService(visits, custody),
        reconciliation_service=ReconciliationService(visits, borrows, directory),
        stats_service=StatsService(visits, borrows),
        dispatch_queue=dispatch_queue,
    )


def build_container(*, db_config: dict, settings: object = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))

    guards_repo = MySQLGuardRepository(conn)
    auth_service = AuthService(
        guards_repo,
        secret_key=str(getattr(settings, "SECRET_KEY", "dev-secret-key")),
        algorithm=str(getattr(settings, "JWT_ALGORITHM", "HS256")),
        ttl_minutes=int(getattr(settings, "TOKEN_TTL_MINUTES", 720)),
    )
    dispatch_queue = DispatchQueue(
        LoggingSender(),
        batch_size=int(getattr(settings, "DISPATCH_BATCH_SIZE", 10)),
        item_delay=float(getattr(settings, "DISPATCH_ITEM_DELAY_SECONDS", 1.0)),
        batch_delay=float(getattr(settings, "DISPATCH_BATCH_DELAY_SECONDS", 2.0)),
        max_retries=int(getattr(settings, "DISPATCH_MAX_RETRIES", 2)),
        retry_delay=float(getattr(settings, "DISPATCH_RETRY_DELAY_SECONDS", 2.0)),
        retention_hours=float(getattr(settings, "DISPATCH_RETENTION_HOURS", 24)),
    )

    return wire(
        workers=MySQLWorkerRepository(conn),
        visits=MySQLVisitRepository(conn),
        categories=MySQLCategoryRepository(conn),
        borrows=MySQLBorrowRepository(conn),
        guards=guards_repo,
        auth_service=auth_service,
        dispatch_queue=dispatch_queue,
        conn=conn,
    )
