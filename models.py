import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index, Integer, String, Text, func

from database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Generation(Base):
    __tablename__ = "generations"
    __table_args__ = (
        CheckConstraint(
            "overall_score IS NULL OR (overall_score >= 0 AND overall_score <= 100)",
            name="ck_generations_overall_score",
        ),
        CheckConstraint(
            "status IN ('completed', 'draft', 'archived')",
            name="ck_generations_status",
        ),
        Index("ix_generations_user_id_created_at", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, index=True, nullable=False)
    created_at = Column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    job_title = Column(String, nullable=False)
    company_name = Column(String, nullable=False)
    overall_score = Column(Integer, nullable=True)
    cover_letter_text = Column(Text, nullable=False)

    # Stored verbatim, returned as received
    scoring_results_json = Column(JSON, nullable=False)
    resume_data_json = Column(JSON, nullable=False)
    job_data_json = Column(JSON, nullable=False)

    title = Column(String(200), nullable=True)
    status = Column(String, nullable=False, default="completed", server_default="completed")
