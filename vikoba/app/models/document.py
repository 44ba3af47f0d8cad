"""
Document database model.

Backs the document-store contract (put / get / query / update_if) with a
single table. Each row is one document of one collection.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, PrimaryKeyConstraint
from sqlalchemy.sql import func
from vikoba.app.db.session import Base


class Document(Base):
    """
    Document model.

    `fields` holds the JSON dump of the domain model. `member_id` is copied
    out of the fields so per-member reads hit an index. `version` increases
    on every update and is the compare-and-swap token for update_if.
    """
    __tablename__ = "documents"

    collection = Column(String(64), nullable=False, index=True)
    id = Column(String(64), nullable=False)

    member_id = Column(String(64), nullable=True, index=True)

    fields = Column(JSON, nullable=False)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("collection", "id", name="pk_documents"),
    )

    def __repr__(self):
        return f"<Document(collection='{self.collection}', id='{self.id}', version={self.version})>"
