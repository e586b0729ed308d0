# shopfloor/models/part.py
from sqlalchemy import Column, Integer, String, Float, Text, DateTime, Boolean, Index, func, true

from shopfloor.core.db_base import Base


class PartRecord(Base):
    """One ingested or curated part row"""
    __tablename__ = "parts"

    id = Column(Integer, primary_key=True, index=True)

    # Required business fields
    part_mark = Column(String, nullable=False)
    assembly_mark = Column(String, nullable=False)
    material = Column(String, nullable=False)
    thickness = Column(String, nullable=False)

    quantity = Column(Integer, server_default="1", default=1)
    length = Column(Float, nullable=True)
    width = Column(Float, nullable=True)
    height = Column(Float, nullable=True)
    weight = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    # Validation tracking, only touched by re-checks
    is_valid = Column(Boolean, server_default=true(), default=True, nullable=False)
    error_codes = Column(Text, nullable=True)
    error_messages = Column(Text, nullable=True)
    last_validated_at = Column(DateTime, nullable=True)

    # Edit tracking
    edited_by = Column(String, nullable=True)
    edited_at = Column(DateTime, nullable=True)
    fields_changed = Column(Text, nullable=True)  # pipe-delimited field keys

    # Provenance
    source_filename = Column(String, nullable=True)
    line_no = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_part_mark", "part_mark"),
        Index("idx_assembly_mark", "assembly_mark"),
    )
