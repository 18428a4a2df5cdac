"""
Database Package

SQLAlchemy models and connection management for PostgreSQL.
"""

from database.connection import (
    get_db,
    get_db_context,
    init_db,
    close_db,
    get_engine,
    get_session_factory,
)

from database.models import (
    Base,
    Company,
    User,
    CompanyMember,
    Notification,
    Client,
    ClientContact,
    Proposal,
    ProposalItem,
    ProposalMilestone,
    Project,
    ProjectService,
    Invoice,
    InvoiceActivity,
    InvoiceFollowUp,
    ClientRetainer,
    RetainerTransaction,
    BillingSchedule,
    BillingRequest,
    ClientPaymentAnalytics,
    PaymentPrediction,
    Rfp,
    RfpSource,
    RfpMonitoringRule,
    DiscoveredRfp,
    AssistantMessage,
    GoogleConnection,
    Email,
    CalendarEvent,
)

__all__ = [
    # Connection
    "get_db",
    "get_db_context",
    "init_db",
    "close_db",
    "get_engine",
    "get_session_factory",
    # Models
    "Base",
    "Company",
    "User",
    "CompanyMember",
    "Notification",
    "Client",
    "ClientContact",
    "Proposal",
    "ProposalItem",
    "ProposalMilestone",
    "Project",
    "ProjectService",
    "Invoice",
    "InvoiceActivity",
    "InvoiceFollowUp",
    "ClientRetainer",
    "RetainerTransaction",
    "BillingSchedule",
    "BillingRequest",
    "ClientPaymentAnalytics",
    "PaymentPrediction",
    "Rfp",
    "RfpSource",
    "RfpMonitoringRule",
    "DiscoveredRfp",
    "AssistantMessage",
    "GoogleConnection",
    "Email",
    "CalendarEvent",
]
