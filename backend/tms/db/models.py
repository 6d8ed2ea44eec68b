import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

ROLES = ("intern", "staff", "unit_manager", "admin")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum(*ROLES, name="user_role"),
        nullable=False,
        default="intern",
    )
    supervisor_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    required_hours: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    zoom_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    zoom_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    zoom_token_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    zoom_user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zoom_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zoom_connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    zoom_connected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    dtr_entries: Mapped[list["DtrEntry"]] = relationship(
        "DtrEntry", back_populates="user", lazy="raise"
    )
    import_histories: Mapped[list["ImportHistory"]] = relationship(
        "ImportHistory", back_populates="uploader", lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


class DtrEntry(Base):
    __tablename__ = "dtr_entries"

    __table_args__ = (
        UniqueConstraint("user_id", "time_in", name="uq_dtr_entry_dedup"),
        Index("ix_dtr_entries_user_date", "user_id", "date"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    time_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    time_out: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    hours_worked: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    accomplishment: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="dtr_entries")

    def __repr__(self) -> str:
        return (
            f"<DtrEntry id={self.id} user_id={self.user_id} "
            f"date={self.work_date} time_in={self.time_in} time_out={self.time_out}>"
        )


class ImportHistory(Base):
    __tablename__ = "import_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Enum("success", "partial", "failed", name="import_status_enum"), nullable=False
    )
    logs: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    uploader: Mapped["User | None"] = relationship(
        "User", back_populates="import_histories"
    )

    def __repr__(self) -> str:
        return f"<ImportHistory id={self.id} filename={self.filename} status={self.status}>"


class NapReport(Base):
    __tablename__ = "nap_reports"

    __table_args__ = (
        Index(
            "ix_nap_reports_agent_period",
            "agent_name",
            "report_start_date",
            "report_end_date",
        ),
        Index("ix_nap_reports_agent_code", "agent_code"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_name: Mapped[str] = mapped_column(String(255), nullable=False)
    agent_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    report_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    report_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    monthly: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    total_cc: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sale: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_lapsed: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    active_months: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    source_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)
    parsed_by: Mapped[str] = mapped_column(
        Enum("gemini", "regex", "manual", name="nap_parsed_by_enum"),
        nullable=False,
        default="gemini",
    )
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    created_by: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<NapReport id={self.id} agent={self.agent_name} "
            f"period={self.report_start_date}..{self.report_end_date}>"
        )
