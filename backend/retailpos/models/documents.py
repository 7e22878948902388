from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Atomic document number counters.

    WHY: Counting existing sales and adding one lets two concurrent sales
    pick the same invoice number. The counter row is incremented with a
    single UPDATE inside the sale's transaction instead.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
        }
