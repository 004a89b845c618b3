"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database.base import Base


class BatchProcess(Base):
    """One batch run over a set of uploaded order documents."""

    __tablename__ = "batch_processes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    total_files: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="processing"
    )  # processing | completed | error | cancelled
    options: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    start_time: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    end_time: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    # Relationships
    files: Mapped[list["BatchProcessFile"]] = relationship(
        "BatchProcessFile", back_populates="batch_process", cascade="all, delete-orphan"
    )


class BatchProcessFile(Base):
    """Per-file progress record inside a batch run."""

    __tablename__ = "batch_process_files"
    __table_args__ = (
        UniqueConstraint("batch_process_id", "file_name", name="uq_batch_file_name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    batch_process_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("batch_processes.id", ondelete="CASCADE"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )  # pending | processing | success | error | cancelled
    company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    work_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("work_orders.id", ondelete="SET NULL"), nullable=True
    )
    detection_result: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    # Relationships
    batch_process: Mapped["BatchProcess"] = relationship(
        "BatchProcess", back_populates="files"
    )


class WorkOrder(Base):
    """Generated work-order text for one source document."""

    __tablename__ = "work_orders"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="waiting"
    )  # waiting | ocr_processing | document_creating | completed | error | cancelled
    generated_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    prompt_identifier: Mapped[str | None] = mapped_column(String, nullable=True)
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    final_company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    detected_company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    detection_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    detection_method: Mapped[str | None] = mapped_column(String, nullable=True)
    detection_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    usage_metadata: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    gemini_processed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )

    # Relationships
    detection_history: Mapped[list["CompanyDetectionHistory"]] = relationship(
        "CompanyDetectionHistory", back_populates="work_order"
    )


class CompanyDetectionRule(Base):
    """Administrator-maintained heuristic mapping document text to a company."""

    __tablename__ = "company_detection_rules"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    company_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    rule_type: Mapped[str] = mapped_column(
        String, nullable=False
    )  # keyword | pattern | address | logo_text
    rule_value: Mapped[str] = mapped_column(String, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()", onupdate=datetime.utcnow
    )


class CompanyDetectionHistory(Base):
    """Audit trail of detection outcomes and any human corrections."""

    __tablename__ = "company_detection_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    work_order_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("work_orders.id", ondelete="SET NULL"), nullable=True
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    detected_company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    detection_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    detection_method: Mapped[str | None] = mapped_column(String, nullable=True)
    detection_details: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    corrected_company_id: Mapped[str | None] = mapped_column(String, nullable=True)
    correction_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrected_by: Mapped[str | None] = mapped_column(String, nullable=True)
    corrected_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default="NOW()"
    )

    # Relationships
    work_order: Mapped["WorkOrder | None"] = relationship(
        "WorkOrder", back_populates="detection_history"
    )
