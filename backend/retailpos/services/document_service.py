# Overview: Service-layer operations for document numbering; atomic counters for invoice numbers.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, Sale
from ..time_utils import local_business_date

SALE_DOCUMENT_TYPE = "SALE"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def count_sales() -> int:
    return db.session.query(func.count(Sale.id)).scalar() or 0


def _increment(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def allocate_sequence_number(document_type: str) -> int:
    """
    Atomically allocate the next number of a sequence.

    Runs inside the caller's transaction: the counter increment commits or
    rolls back together with the document that uses it, so numbers are
    gap-free under sequential execution.

    The first allocation seeds the counter from the number of sales already
    on file, which keeps numbering continuous for databases that predate the
    counter table.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    next_num = _increment(document_type)
    if next_num is not None:
        return next_num

    first = count_sales() + 1 if document_type == SALE_DOCUMENT_TYPE else 1
    try:
        # SAVEPOINT so a lost insert race does not roll back the caller's work
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, next_number=first + 1))
        return first
    except IntegrityError:
        next_num = _increment(document_type)
        if next_num is None:
            raise
        return next_num


def format_invoice_number(sequence: int, year: int, prefix: str = "INV") -> str:
    """INV-{4-digit year}{5-digit zero-padded sequence}, e.g. INV-202600042."""
    return f"{prefix}-{year:04d}{sequence:05d}"


def next_invoice_number(now: datetime) -> str:
    """Year is taken from the store-local date, the same day the sale is reported under."""
    sequence = allocate_sequence_number(SALE_DOCUMENT_TYPE)
    prefix = current_app.config.get("INVOICE_PREFIX", "INV")
    year = local_business_date(now, current_app.config.get("STORE_TIMEZONE", "UTC")).year
    return format_invoice_number(sequence, year, prefix)
