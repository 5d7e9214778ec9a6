"""Outbox worker that turns reconcile tasks into stock decrements."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from orderflow.core.config import settings
from orderflow.core.errors import DependencyError
from orderflow.models.inventory import InventoryDecrement
from orderflow.models.order import Order
from orderflow.models.reconcile_task import ReconcileTask
from orderflow.services.collaborators import registry
from orderflow.services.inventory_reconciler import InventoryReconciler, OrderLine
from orderflow.utils.time import utcnow

logger = logging.getLogger(__name__)

CLOSED_ORDER_STATUSES = frozenset({"cancelled", "refunded"})


@dataclass
class WorkerRunSummary:
    processed: int = 0
    done: int = 0
    retried: int = 0
    dead: int = 0


def backoff_delay(attempts: int) -> timedelta:
    """Exponential delay after the given number of failed attempts, capped."""
    seconds = settings.reconcile_backoff_seconds * (2 ** max(attempts - 1, 0))
    return timedelta(seconds=min(seconds, settings.reconcile_backoff_cap_seconds))


def list_tasks(db: Session, status: str | None = None, order_id: int | None = None) -> list[ReconcileTask]:
    stmt = select(ReconcileTask).order_by(ReconcileTask.id.asc())
    if status:
        stmt = stmt.where(ReconcileTask.status == status)
    if order_id is not None:
        stmt = stmt.where(ReconcileTask.order_id == order_id)
    return list(db.scalars(stmt).all())


def due_tasks(db: Session, now: datetime, limit: int) -> list[ReconcileTask]:
    return list(
        db.scalars(
            select(ReconcileTask)
            .where(
                or_(ReconcileTask.status == "pending", ReconcileTask.status == "retry"),
                ReconcileTask.next_attempt_at <= now,
            )
            .order_by(ReconcileTask.next_attempt_at.asc(), ReconcileTask.id.asc())
            .limit(limit)
        ).all()
    )


def _nothing_applied(db: Session, order_id: int) -> bool:
    applied = db.scalar(
        select(InventoryDecrement.id)
        .where(InventoryDecrement.order_id == order_id, InventoryDecrement.status == "applied")
        .limit(1)
    )
    return applied is None


def _mark_done(task: ReconcileTask, now: datetime, note: str | None = None) -> None:
    task.status = "done"
    task.completed_at = now
    task.last_error = note


def _record_failure(task: ReconcileTask, now: datetime, error: str, summary: WorkerRunSummary) -> None:
    task.last_error = error
    if task.attempts >= settings.reconcile_max_attempts:
        task.status = "dead"
        task.completed_at = now
        summary.dead += 1
        logger.error(
            "[RECONCILE] Task %s for order %s dead after %s attempts: %s",
            task.id,
            task.order_id,
            task.attempts,
            error,
        )
        return
    task.status = "retry"
    task.next_attempt_at = now + backoff_delay(task.attempts)
    summary.retried += 1
    logger.warning(
        "[RECONCILE] Task %s for order %s failed (attempt %s), retrying at %s: %s",
        task.id,
        task.order_id,
        task.attempts,
        task.next_attempt_at,
        error,
    )


def process_task(db: Session, task: ReconcileTask, reconciler: InventoryReconciler, now: datetime, summary: WorkerRunSummary) -> None:
    task.attempts += 1
    db.commit()
    order: Order | None = db.get(Order, task.order_id)
    if order is None:
        _mark_done(task, now, "order no longer exists")
        db.commit()
        summary.done += 1
        return

    if order.status in CLOSED_ORDER_STATUSES and _nothing_applied(db, order.id):
        _mark_done(task, now, f"skipped: order {order.status} before any stock was reduced")
        db.commit()
        summary.done += 1
        logger.info("[RECONCILE] Skipped task %s; order %s is %s", task.id, order.order_number, order.status)
        return

    lines = [OrderLine(name=item.name, quantity=item.quantity) for item in order.items]
    try:
        report = reconciler.reduce(db, order.id, lines)
    except DependencyError as exc:
        db.rollback()
        _record_failure(task, now, str(exc), summary)
        db.commit()
        return

    if report.succeeded:
        _mark_done(task, now)
        summary.done += 1
        logger.info("[RECONCILE] Task %s for order %s done", task.id, order.order_number)
    else:
        failed = [f"{r.ingredient_name}: {r.error}" for r in report.results if r.status == "failed"]
        _record_failure(task, now, "; ".join(failed), summary)
    db.commit()


def process_due_tasks(
    db: Session,
    reconciler: InventoryReconciler | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> WorkerRunSummary:
    """Run every task whose next attempt is due."""
    now = now or utcnow()
    reconciler = reconciler or registry.reconciler(db)
    summary = WorkerRunSummary()
    for task in due_tasks(db, now, limit or settings.reconcile_batch_size):
        summary.processed += 1
        process_task(db, task, reconciler, now, summary)
    return summary


class ReconcilePoller:
    """Background thread that drains due tasks on a fixed interval."""

    def __init__(self, session_factory: Callable[[], Session], interval: float | None = None):
        self._session_factory = session_factory
        self._interval = interval if interval is not None else settings.reconcile_poll_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="reconcile-poller", daemon=True)
        self._thread.start()
        logger.info("[RECONCILE] Poller started (every %ss)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> WorkerRunSummary:
        db = self._session_factory()
        try:
            return process_due_tasks(db)
        finally:
            db.close()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                summary = self.run_once()
                if summary.processed:
                    logger.info("[RECONCILE] Run: %s", summary)
            except Exception:
                logger.exception("[RECONCILE] Poller iteration failed")
            self._stop.wait(self._interval)
