"""SQLAlchemy table definitions.

These map to the frozen AssessmentRecord dataclass in assessrec/models/record.py.
Repos convert between SQLAlchemy rows and the domain dataclass.
"""

from __future__ import annotations

from sqlalchemy import Float, Index, Integer, LargeBinary, String
from sqlalchemy.orm import Mapped, mapped_column

from assessrec.db.engine import Base


class AssessmentRecordRow(Base):
    __tablename__ = "assessment_records"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    assessment_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )  # 0 when not a group record
    external_grade_ref: Mapped[str] = mapped_column(
        String(255), nullable=False, default=""
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    time_on_task: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    start_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_change: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    score: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    status: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scored_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=b"")
    practice_data: Mapped[bytes] = mapped_column(
        LargeBinary, nullable=False, default=b""
    )
    revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (Index("ix_assessment_records_group", "assessment_id", "group_id"),)
