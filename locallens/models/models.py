# models.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from ..database import Base, utcnow
from .report import Priority, ReportStatus
from .user import User


class Report(Base):
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(30), nullable=False, index=True)
    status = Column(String(20), default=ReportStatus.PENDING.value, nullable=False, index=True)
    priority = Column(String(10), default=Priority.MEDIUM.value, nullable=False)

    # Location
    address = Column(String(255), nullable=False)
    city = Column(String(100), nullable=False, index=True)
    state = Column(String(100))
    zip_code = Column(String(20))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    images = Column(JSON, default=list)
    tags = Column(JSON, default=list)

    reported_by_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.user_id"), index=True)

    is_public = Column(Boolean, default=True, nullable=False)
    resolved_at = Column(DateTime)
    estimated_resolution_time = Column(DateTime)
    client_metadata = Column("metadata", JSON)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    reporter = relationship(User, back_populates="reports", foreign_keys=[reported_by_id])
    assignee = relationship(User, foreign_keys=[assigned_to_id])
    status_history = relationship(
        "StatusHistoryEntry",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="[StatusHistoryEntry.changed_at, StatusHistoryEntry.id]",
    )
    admin_comments = relationship(
        "AdminComment",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="[AdminComment.commented_at, AdminComment.id]",
    )
    upvotes = relationship("Upvote", back_populates="report", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_reports_priority_status", "priority", "status"),
        Index("ix_reports_city_status", "city", "status"),
    )

    @property
    def upvote_count(self) -> int:
        return len(self.upvotes)

    def has_upvote_from(self, user_id) -> bool:
        return user_id is not None and any(v.user_id == user_id for v in self.upvotes)


class StatusHistoryEntry(Base):
    __tablename__ = "status_history"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    changed_by_id = Column(Integer, ForeignKey("users.user_id"))
    changed_at = Column(DateTime, default=utcnow, nullable=False)
    comment = Column(String(500))

    report = relationship("Report", back_populates="status_history")
    changed_by = relationship(User)


class AdminComment(Base):
    __tablename__ = "admin_comments"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    comment = Column(String(500), nullable=False)
    commented_by_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    commented_at = Column(DateTime, default=utcnow, nullable=False)

    report = relationship("Report", back_populates="admin_comments")
    commented_by = relationship(User)


class Upvote(Base):
    __tablename__ = "upvotes"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    voted_at = Column(DateTime, default=utcnow, nullable=False)

    report = relationship("Report", back_populates="upvotes")

    __table_args__ = (UniqueConstraint("report_id", "user_id", name="uq_upvote_report_user"),)
