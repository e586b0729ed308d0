# shopfloor/models/audit_log.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, func

from shopfloor.core.db_base import Base

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_BULK_DELETE = "BULK_DELETE"
ACTION_CLEAR_ALL = "CLEAR_ALL"

AUDIT_ACTIONS = (
    ACTION_CREATE,
    ACTION_UPDATE,
    ACTION_DELETE,
    ACTION_BULK_DELETE,
    ACTION_CLEAR_ALL,
)


class AuditLog(Base):
    """Append-only record of one mutation of the parts table"""
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, server_default=func.now())
    # Null once the acting user has been deleted
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String, nullable=False)
    row_id = Column(Integer, nullable=True)  # no FK, the part may be gone
    diff = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_audit_timestamp", "timestamp"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_row_id", "row_id"),
        Index("idx_audit_user_id", "user_id"),
    )
