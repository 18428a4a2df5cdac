"""
Database Models

SQLAlchemy models for the Ordino back office. Every business record is scoped
to a company (tenant).
"""

import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    JSON, String, Text, Integer, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

Money = Numeric(12, 2)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )


def _pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


def _company_fk() -> Mapped[uuid.UUID]:
    return mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )


# ============================================================================
# CORE MODELS: Companies & Users
# ============================================================================

class Company(TimestampMixin, Base):
    """
    Company (tenant) model.

    Holds the per-company document number sequences.
    """
    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = _pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(Text)
    settings: Mapped[dict] = mapped_column(JSONType, default=dict)
    proposal_seq: Mapped[int] = mapped_column(Integer, default=0)
    invoice_seq: Mapped[int] = mapped_column(Integer, default=0)
    project_seq: Mapped[int] = mapped_column(Integer, default=0)

    members: Mapped[List["CompanyMember"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan"
    )


class User(TimestampMixin, Base):
    """User model with authentication fields."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = _pk()
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_superuser: Mapped[bool] = mapped_column(Boolean, default=False)

    memberships: Mapped[List["CompanyMember"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan"
    )


class CompanyMember(Base):
    """
    Company membership with roles.

    Roles: admin, manager, pm, accounting, member
    """
    __tablename__ = "company_members"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    role: Mapped[str] = mapped_column(String(50), default="member")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    company: Mapped["Company"] = relationship(back_populates="members")
    user: Mapped["User"] = relationship(back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_user"),
    )


class Notification(Base):
    """In-app notification for a user."""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text)
    link: Mapped[Optional[str]] = mapped_column(String(500))
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="SET NULL")
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


# ============================================================================
# CLIENT MODELS
# ============================================================================

class Client(TimestampMixin, Base):
    """A client of the firm (owner, architect, developer, ...)."""
    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_type: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(Text)
    tax_id: Mapped[Optional[str]] = mapped_column(String(20))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    contacts: Mapped[List["ClientContact"]] = relationship(
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="ClientContact.name"
    )


class ClientContact(TimestampMixin, Base):
    """A person at a client."""
    __tablename__ = "client_contacts"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    mobile: Mapped[Optional[str]] = mapped_column(String(50))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    client: Mapped["Client"] = relationship(back_populates="contacts")


# ============================================================================
# PROPOSAL & PROJECT MODELS
# ============================================================================

class Proposal(TimestampMixin, Base):
    """A priced proposal sent to a client."""
    __tablename__ = "proposals"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    proposal_number: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL")
    )
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    client_email: Mapped[Optional[str]] = mapped_column(String(255))
    property_address: Mapped[Optional[str]] = mapped_column(Text)
    scope_of_work: Mapped[Optional[str]] = mapped_column(Text)
    payment_terms: Mapped[Optional[str]] = mapped_column(Text)
    deposit_required: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    deposit_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    retainer_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    valid_until: Mapped[Optional[date]] = mapped_column(Date)
    lead_source: Mapped[Optional[str]] = mapped_column(String(100))
    project_type: Mapped[Optional[str]] = mapped_column(String(100))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    terms_conditions: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(50), default="draft")
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    follow_up_count: Mapped[int] = mapped_column(Integer, default=0)
    last_follow_up_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    assigned_pm_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    sales_person_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    internal_signed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    internal_signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    internal_signature_data: Mapped[Optional[str]] = mapped_column(Text)
    converted_project_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    converted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items: Mapped[List["ProposalItem"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ProposalItem.sort_order"
    )
    milestones: Mapped[List["ProposalMilestone"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ProposalMilestone.sort_order"
    )

    __table_args__ = (
        UniqueConstraint("company_id", "proposal_number", name="uq_proposal_number"),
        Index("idx_proposals_status", "status"),
    )


class ProposalItem(Base):
    """A priced service line on a proposal."""
    __tablename__ = "proposal_items"

    id: Mapped[uuid.UUID] = _pk()
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("1"))
    unit_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class ProposalMilestone(Base):
    """A payment milestone on a proposal."""
    __tablename__ = "proposal_milestones"

    id: Mapped[uuid.UUID] = _pk()
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proposals.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2))
    amount: Mapped[Optional[Decimal]] = mapped_column(Money)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)


class Project(TimestampMixin, Base):
    """A project created when a proposal is signed."""
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    project_number: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL")
    )
    proposal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proposals.id", ondelete="SET NULL")
    )
    assigned_pm_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(50), default="open")
    retainer_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    retainer_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )

    services: Mapped[List["ProjectService"]] = relationship(
        cascade="all, delete-orphan",
        order_by="ProjectService.created_at"
    )

    __table_args__ = (
        UniqueConstraint("company_id", "project_number", name="uq_project_number"),
    )


class ProjectService(Base):
    """A billable service on a project."""
    __tablename__ = "project_services"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    fixed_price: Mapped[Optional[Decimal]] = mapped_column(Money)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    billing_type: Mapped[str] = mapped_column(String(20), default="fixed")
    status: Mapped[str] = mapped_column(String(50), default="not_started")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


# ============================================================================
# INFORMATION REQUESTS (PIS)
# ============================================================================

class RfiTemplate(TimestampMixin, Base):
    """A reusable questionnaire layout: sections of fields."""
    __tablename__ = "rfi_templates"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    sections: Mapped[list] = mapped_column(JSONType, default=list)


class RfiRequest(TimestampMixin, Base):
    """
    A questionnaire sent to a client, answered through a public link.

    The sections are copied from the template when the request is created,
    so later template edits never change what the client was asked.
    """
    __tablename__ = "rfi_requests"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rfi_templates.id", ondelete="SET NULL")
    )
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        index=True
    )
    proposal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proposals.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    recipient_name: Mapped[Optional[str]] = mapped_column(String(255))
    recipient_email: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="draft")
    access_token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    sections: Mapped[list] = mapped_column(JSONType, default=list)
    responses: Mapped[dict] = mapped_column(JSONType, default=dict)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )


# ============================================================================
# BILLING MODELS
# ============================================================================

class Invoice(TimestampMixin, Base):
    """Client invoice."""
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="SET NULL")
    )
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL"),
        index=True
    )
    billing_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    billed_to_contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("client_contacts.id", ondelete="SET NULL")
    )
    retainer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("client_retainers.id", ondelete="SET NULL")
    )
    line_items: Mapped[list] = mapped_column(JSONType, default=list)
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    retainer_applied: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    fees: Mapped[dict] = mapped_column(JSONType, default=dict)
    total_due: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(50), default="draft")
    review_reason: Mapped[Optional[str]] = mapped_column(Text)
    payment_terms: Mapped[Optional[str]] = mapped_column(String(100))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(Money)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    gmail_message_id: Mapped[Optional[str]] = mapped_column(String(255))
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )

    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoice_number"),
        Index("idx_invoices_status", "status"),
    )


class InvoiceActivity(Base):
    """Append-only activity log for an invoice."""
    __tablename__ = "invoice_activity_log"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class InvoiceFollowUp(Base):
    """A collections touch on an invoice (call, reminder email, ...)."""
    __tablename__ = "invoice_follow_ups"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    contact_method: Mapped[str] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class ClientRetainer(TimestampMixin, Base):
    """Prepaid balance held for a client and drawn down by invoices."""
    __tablename__ = "client_retainers"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    original_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    current_balance: Mapped[Decimal] = mapped_column(Money, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="active")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )


class RetainerTransaction(Base):
    """Ledger entry against a retainer."""
    __tablename__ = "retainer_transactions"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    retainer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("client_retainers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="SET NULL")
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class BillingSchedule(TimestampMixin, Base):
    """Recurring billing for a project service."""
    __tablename__ = "billing_schedules"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False
    )
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    billing_method: Mapped[str] = mapped_column(String(20), default="fixed")
    billing_value: Mapped[Decimal] = mapped_column(Money, nullable=False)
    frequency: Mapped[str] = mapped_column(String(20), default="monthly")
    next_bill_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Day of month monthly and quarterly bills fall on; short months clamp
    anchor_day: Mapped[Optional[int]] = mapped_column(Integer)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    max_occurrences: Mapped[Optional[int]] = mapped_column(Integer)
    occurrences_completed: Mapped[int] = mapped_column(Integer, default=0)
    auto_approve: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    billed_to_contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("client_contacts.id", ondelete="SET NULL")
    )
    last_billed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )

    __table_args__ = (
        Index("idx_billing_schedules_due", "is_active", "next_bill_date"),
    )


class BillingRequest(Base):
    """A request to bill a project, approved into an invoice."""
    __tablename__ = "billing_requests"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False
    )
    services: Mapped[list] = mapped_column(JSONType, default=list)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    billed_to_contact_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class ClientPaymentAnalytics(Base):
    """Rolled-up payment behaviour for one client."""
    __tablename__ = "client_payment_analytics"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    avg_days_to_payment: Mapped[Optional[float]] = mapped_column(Numeric(8, 2))
    payment_reliability_score: Mapped[Optional[int]] = mapped_column(Integer)
    last_12mo_invoices: Mapped[int] = mapped_column(Integer, default=0)
    last_12mo_paid_on_time: Mapped[int] = mapped_column(Integer, default=0)
    last_12mo_late: Mapped[int] = mapped_column(Integer, default=0)
    longest_days_late: Mapped[int] = mapped_column(Integer, default=0)
    responds_to_reminders: Mapped[bool] = mapped_column(Boolean, default=False)
    total_lifetime_value: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    last_payment_date: Mapped[Optional[date]] = mapped_column(Date)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("client_id", "company_id", name="uq_client_payment_analytics"),
    )


class PaymentPrediction(Base):
    """AI payment-risk prediction for an invoice."""
    __tablename__ = "payment_predictions"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False)
    predicted_days_late: Mapped[Optional[int]] = mapped_column(Integer)
    predicted_payment_date: Mapped[Optional[date]] = mapped_column(Date)
    confidence_level: Mapped[str] = mapped_column(String(10), default="medium")
    factors: Mapped[dict] = mapped_column(JSONType, default=dict)
    model_version: Mapped[str] = mapped_column(String(20), default="v1")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


# ============================================================================
# RFP MODELS
# ============================================================================

class Rfp(TimestampMixin, Base):
    """An RFP the firm is tracking or pursuing."""
    __tablename__ = "rfps"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    rfp_number: Mapped[Optional[str]] = mapped_column(String(255))
    agency: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    contract_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(50), default="prospect")
    scope_summary: Mapped[Optional[str]] = mapped_column(Text)
    extracted: Mapped[Optional[dict]] = mapped_column(JSONType)
    document_path: Mapped[Optional[str]] = mapped_column(String(500))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_rfps_status", "status"),
    )


class RfpSource(Base):
    """A procurement listing page monitored for new RFPs."""
    __tablename__ = "rfp_sources"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    source_name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_type: Mapped[str] = mapped_column(String(50), default="web")
    check_frequency: Mapped[str] = mapped_column(String(20), default="daily")
    last_checked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class RfpMonitoringRule(Base):
    """Keyword and threshold rules applied when scoring discovered RFPs."""
    __tablename__ = "rfp_monitoring_rules"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    keyword_include: Mapped[list] = mapped_column(JSONType, default=list)
    keyword_exclude: Mapped[list] = mapped_column(JSONType, default=list)
    agencies_include: Mapped[list] = mapped_column(JSONType, default=list)
    min_relevance_score: Mapped[int] = mapped_column(Integer, default=60)
    notify_email: Mapped[bool] = mapped_column(Boolean, default=False)
    email_recipients: Mapped[list] = mapped_column(JSONType, default=list)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class DiscoveredRfp(TimestampMixin, Base):
    """An opportunity found by the RFP monitor."""
    __tablename__ = "discovered_rfps"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rfp_sources.id", ondelete="SET NULL")
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    rfp_number: Mapped[Optional[str]] = mapped_column(String(255))
    issuing_agency: Mapped[Optional[str]] = mapped_column(String(255))
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    original_url: Mapped[Optional[str]] = mapped_column(Text)
    pdf_url: Mapped[Optional[str]] = mapped_column(Text)
    discovered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    relevance_score: Mapped[Optional[int]] = mapped_column(Integer)
    relevance_reason: Mapped[Optional[str]] = mapped_column(Text)
    service_tags: Mapped[list] = mapped_column(JSONType, default=list)
    estimated_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))
    status: Mapped[str] = mapped_column(String(20), default="new")
    assigned_to: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL")
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    rfp_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("rfps.id", ondelete="SET NULL")
    )

    __table_args__ = (
        Index("idx_discovered_rfps_status", "company_id", "status"),
    )


# ============================================================================
# ASSISTANT & INTEGRATION MODELS
# ============================================================================

class AssistantMessage(Base):
    """One turn of a Beacon conversation."""
    __tablename__ = "assistant_messages"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    context_type: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class GoogleConnection(TimestampMixin, Base):
    """OAuth tokens for a user's Google account (Gmail + Calendar)."""
    __tablename__ = "google_connections"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )
    email: Mapped[Optional[str]] = mapped_column(String(255))
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text)
    token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scopes: Mapped[Optional[str]] = mapped_column(Text)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Email(Base):
    """An email sent or received through the Gmail integration."""
    __tablename__ = "emails"
    __table_args__ = (
        Index("ix_emails_company_message", "company_id", "gmail_message_id"),
    )

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    gmail_message_id: Mapped[Optional[str]] = mapped_column(String(255))
    thread_id: Mapped[Optional[str]] = mapped_column(String(255))
    direction: Mapped[str] = mapped_column(String(10), default="outbound")
    subject: Mapped[Optional[str]] = mapped_column(Text)
    from_name: Mapped[Optional[str]] = mapped_column(String(255))
    from_address: Mapped[Optional[str]] = mapped_column(String(500))
    to_address: Mapped[Optional[str]] = mapped_column(Text)
    snippet: Mapped[Optional[str]] = mapped_column(Text)
    body_text: Mapped[Optional[str]] = mapped_column(Text)
    labels: Mapped[list] = mapped_column(JSONType, default=list)
    is_read: Mapped[bool] = mapped_column(Boolean, default=True)
    has_attachments: Mapped[bool] = mapped_column(Boolean, default=False)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("invoices.id", ondelete="SET NULL")
    )
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )


class CalendarEvent(TimestampMixin, Base):
    """Calendar event mirrored from (or pushed to) Google Calendar."""
    __tablename__ = "calendar_events"

    id: Mapped[uuid.UUID] = _pk()
    company_id: Mapped[uuid.UUID] = _company_fk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    google_event_id: Mapped[Optional[str]] = mapped_column(String(255))
    google_calendar_id: Mapped[str] = mapped_column(String(255), default="primary")
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    all_day: Mapped[bool] = mapped_column(Boolean, default=False)
    event_type: Mapped[str] = mapped_column(String(50), default="general")
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="SET NULL")
    )
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(20), default="confirmed")
    sync_status: Mapped[str] = mapped_column(String(20), default="synced")
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    event_metadata: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)

    __table_args__ = (
        UniqueConstraint("company_id", "google_event_id", name="uq_company_google_event"),
        Index("idx_calendar_events_user_start", "user_id", "start_time"),
    )
