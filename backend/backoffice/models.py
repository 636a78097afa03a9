# backend/backoffice/models.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# -----------------------------
# Users / branches
# -----------------------------
class Branch(Base):
    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="agent")  # agent|manager|vp|director|admin
    branch_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def display_name(self) -> str:
        name = " ".join(x for x in (self.first_name, self.last_name) if x)
        return name or self.email


# -----------------------------
# Properties
# -----------------------------
class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        Index("ix_properties_status_listing_created", "status", "listing_type", "created_at"),
        CheckConstraint(
            "status IN ('pending', 'active', 'rejected', 'archived', 'sold')",
            name="ck_properties_status_valid",
        ),
        CheckConstraint(
            "listing_type IN ('agency_owned', 'branch_owned', 'brokerage')",
            name="ck_properties_listing_type_valid",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    # pending|active|rejected|archived|sold
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    # agency_owned|branch_owned|brokerage
    listing_type: Mapped[str] = mapped_column(String(20), nullable=False)

    property_category: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    property_subcategory: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    area_m2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    buy_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sell_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # brokerage listings only
    owner_first_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    owner_last_name: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    owner_contact: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    brokerage_commission_percent: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    branch_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("branches.id"), nullable=True, index=True)
    created_by_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    approvals: Mapped[List["Approval"]] = relationship(back_populates="property")


# -----------------------------
# Approval workflow
# -----------------------------
class Approval(Base):
    __tablename__ = "approvals"
    __table_args__ = (
        # at most one in-flight run per property
        Index(
            "uq_approvals_property_in_progress",
            "property_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(Integer, ForeignKey("properties.id"), nullable=False, index=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="in_progress")  # in_progress|approved|rejected
    started_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    property: Mapped["Property"] = relationship(back_populates="approvals")
    steps: Mapped[List["ApprovalStep"]] = relationship(
        back_populates="approval",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (
        Index("ix_approval_steps_approval_order", "approval_id", "step_order", unique=True),
        Index("ix_approval_steps_status_role", "status", "required_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    approval_id: Mapped[int] = mapped_column(Integer, ForeignKey("approvals.id"), nullable=False)

    step: Mapped[str] = mapped_column(String(40), nullable=False)  # manager|vp_budget|director|manager_publish
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    required_role: Mapped[str] = mapped_column(String(20), nullable=False)  # manager|vp|director
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|approved|rejected

    approved_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    approval: Mapped["Approval"] = relationship(back_populates="steps")


# -----------------------------
# Audit log (append-only)
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_entity_lookup", "entity_type", "entity_id", "created_at"),
        Index("ix_audit_events_actor_lookup", "actor_user_id", "action", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
