# backend/repfi/models.py
import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Enum, Integer, BigInteger, Boolean, Text, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


class FileType(str, enum.Enum):
    GRAND_LIVRE = "GRAND_LIVRE"
    PLAN_COMPTES = "PLAN_COMPTES"
    PLAN_TIERS = "PLAN_TIERS"
    CODE_JOURNAL = "CODE_JOURNAL"

    # Legacy v2 split ledger, still readable but never required on upload
    GRAND_LIVRE_COMPTES = "GRAND_LIVRE_COMPTES"
    GRAND_LIVRE_TIERS = "GRAND_LIVRE_TIERS"


class ProcessingStatus(str, enum.Enum):
    """
    Lifecycle of a comptable period and of each of its files.

    State transitions:
        PENDING → PROCESSING               (ETL run triggered by this service)
        PENDING → VALIDATING → PROCESSING → COMPLETED
        PENDING → VALIDATING → FAILED
        PROCESSING → FAILED
        FAILED → PROCESSING                (ETL run triggered again)

    Replacing the files of a period puts it back to PENDING.
    """
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    users: Mapped[list["User"]] = relationship(back_populates="company")
    clients: Mapped[list["Client"]] = relationship(back_populates="company")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    company: Mapped["Company"] = relationship(back_populates="users")


class Client(Base):
    """A customer of the accounting firm (company) whose books are uploaded."""
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String)
    company_id: Mapped[str] = mapped_column(ForeignKey("companies.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    company: Mapped["Company"] = relationship(back_populates="clients")
    periods: Mapped[list["ComptablePeriod"]] = relationship(back_populates="client")


class ComptablePeriod(Base):
    """
    A billing period of a client, grouping the files uploaded together.

    batch_id is the identifier handed to the ETL and to the status endpoint.
    excel_file_url is written by the ETL once the Excel export is produced.
    """
    __tablename__ = "comptable_periods"
    __table_args__ = (
        # "Does a completed period of client X overlap [start, end]?"
        Index('ix_comptable_period_client_status', 'client_id', 'status'),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), index=True)
    period_start: Mapped[datetime] = mapped_column(DateTime)
    period_end: Mapped[datetime] = mapped_column(DateTime)
    year: Mapped[int] = mapped_column(Integer)
    batch_id: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus),
        default=ProcessingStatus.PENDING
    )
    progress: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    excel_file_url: Mapped[str | None] = mapped_column(String, nullable=True)  # s3://bucket/key of the ETL export
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    client: Mapped["Client"] = relationship(back_populates="periods")
    files: Mapped[list["ComptableFile"]] = relationship(
        back_populates="period",
        cascade="all, delete-orphan"
    )


class ComptableFile(Base):
    __tablename__ = "comptable_files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    file_name: Mapped[str] = mapped_column(String)
    file_type: Mapped[FileType] = mapped_column(Enum(FileType))
    file_year: Mapped[int] = mapped_column(Integer)
    s3_key: Mapped[str] = mapped_column(String)
    s3_url: Mapped[str] = mapped_column(String)
    file_size: Mapped[int] = mapped_column(BigInteger)
    mime_type: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="SUCCES")  # upload outcome, not processing
    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus),
        default=ProcessingStatus.PENDING
    )
    batch_id: Mapped[str] = mapped_column(String(36), index=True)
    period_start: Mapped[datetime] = mapped_column(DateTime)
    period_end: Mapped[datetime] = mapped_column(DateTime)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id"), index=True)
    period_id: Mapped[str] = mapped_column(ForeignKey("comptable_periods.id", ondelete="CASCADE"), index=True)
    uploaded_by_id: Mapped[str] = mapped_column(ForeignKey("users.id"))
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    period: Mapped["ComptablePeriod"] = relationship(back_populates="files")
    history: Mapped[list["ComptableFileHistory"]] = relationship(
        back_populates="file",
        cascade="all, delete-orphan"
    )


class ComptableFileHistory(Base):
    """Audit trail of actions performed on comptable files."""
    __tablename__ = "comptable_file_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    file_id: Mapped[str] = mapped_column(ForeignKey("comptable_files.id", ondelete="CASCADE"), index=True)
    file_name: Mapped[str] = mapped_column(String)
    action: Mapped[str] = mapped_column(String(50))
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"))
    user_email: Mapped[str] = mapped_column(String, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    file: Mapped["ComptableFile"] = relationship(back_populates="history")
