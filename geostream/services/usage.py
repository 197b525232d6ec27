from __future__ import annotations

from datetime import UTC, datetime
from typing import Dict, List

from sqlmodel import Session, select

from ..database import init_db, session_scope
from ..models import FetchRunStat


_usage_initialized = False


def _ensure_usage_table() -> None:
    global _usage_initialized
    if not _usage_initialized:
        init_db()
        _usage_initialized = True


def record_fetch_run(product: str, *, requested: int, failed: int = 0) -> None:
    """Add one bulk run's request and residual failure counts to the product's ledger."""

    if requested <= 0:
        return

    _ensure_usage_table()

    with session_scope() as session:
        statement = select(FetchRunStat).where(FetchRunStat.product == product)
        usage = session.exec(statement).one_or_none()
        now = datetime.now(UTC)
        if usage is None:
            usage = FetchRunStat(
                product=product,
                run_count=1,
                request_count=requested,
                failure_count=failed,
                last_used_at=now,
            )
            session.add(usage)
        else:
            usage.run_count += 1
            usage.request_count += requested
            usage.failure_count += failed
            usage.last_used_at = now
        session.commit()


def usage_summary(session: Session) -> List[Dict[str, object]]:
    statement = select(FetchRunStat).order_by(FetchRunStat.product)
    stats: List[FetchRunStat] = session.exec(statement).all()
    return [
        {
            "product": stat.product,
            "run_count": stat.run_count,
            "request_count": stat.request_count,
            "failure_count": stat.failure_count,
            "last_used_at": stat.last_used_at,
        }
        for stat in stats
    ]
