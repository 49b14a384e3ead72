# Overview: Service-layer operations for document numbering (sales, purchases).

from __future__ import annotations

from datetime import date

from ..extensions import db


def next_daily_number(column, prefix: str, on_date: date, *, pad: int = 4) -> str:
    """
    Allocate the next "{prefix}-YYYYMMDD-NNNN" number for a day.

    Must run inside a write unit of work (begin_write) so two writers cannot
    read the same last number.
    """
    stem = f"{prefix}-{on_date.strftime('%Y%m%d')}-"
    last = (
        db.session.query(column)
        .filter(column.like(f"{stem}%"))
        .order_by(column.desc())
        .first()
    )
    next_num = 1
    if last is not None:
        try:
            next_num = int(last[0][len(stem):]) + 1
        except ValueError:
            next_num = db.session.query(column).filter(column.like(f"{stem}%")).count() + 1
    return f"{stem}{next_num:0{pad}d}"
