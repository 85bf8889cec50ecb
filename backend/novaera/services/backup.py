from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from novaera.core.database import Base
from novaera.models import coupon, finance, order, payment_transaction, product, profile, team  # noqa: F401


logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def export_tables(db: Session, *, now: datetime | None = None) -> dict[str, Any]:
    """Dump every mapped table as plain rows, keyed by table name."""
    now = now or datetime.now(timezone.utc)
    tables: dict[str, list[dict[str, Any]]] = {}
    counts: dict[str, int] = {}
    for table in Base.metadata.sorted_tables:
        rows = db.execute(table.select()).mappings().all()
        tables[table.name] = [{k: _jsonable(v) for k, v in row.items()} for row in rows]
        counts[table.name] = len(rows)

    logger.info("backup.export tables=%s rows=%s", len(tables), sum(counts.values()))
    return {
        "exported_at": now.isoformat(),
        "tables": tables,
        "counts": counts,
        "total_records": sum(counts.values()),
    }


def backup_filename(today: date | None = None) -> str:
    today = today or datetime.now(timezone.utc).date()
    return f"backup-{today.isoformat()}.json"
