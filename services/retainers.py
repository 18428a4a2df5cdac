"""
Retainer Ledger Service

Client retainers are prepaid balances that invoices draw down. Every change
to a balance writes a RetainerTransaction recording the balance after the
change, and runs under a row lock on the retainer.
"""

import logging
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import ClientRetainer, RetainerTransaction, Invoice, Client
from services.errors import RecordNotFound, InvalidOperation, InsufficientBalance
from services.formatters import money, format_currency
from services.invoices import compute_total_due, log_activity

logger = logging.getLogger("ordino.services.retainers")

TRANSACTION_TYPES = ("deposit", "draw_down", "refund", "adjustment")
CLOSED_STATUSES = ("cancelled", "refunded")


# ============================================================================
# Ledger math
# ============================================================================

def apply_entry(balance: Decimal, tx_type: str, amount: Decimal) -> Decimal:
    """
    Return the balance after a ledger entry.

    Deposits, draw-downs and refunds take a positive amount; adjustments
    take a signed, non-zero amount. The result is never negative.
    """
    if tx_type not in TRANSACTION_TYPES:
        raise InvalidOperation(f"Unknown transaction type: {tx_type}")

    balance = money(balance)
    amount = money(amount)

    if tx_type == "adjustment":
        if amount == 0:
            raise InvalidOperation("Adjustment amount must be non-zero")
        new_balance = balance + amount
    else:
        if amount <= 0:
            raise InvalidOperation("Amount must be greater than zero")
        if tx_type == "deposit":
            new_balance = balance + amount
        else:
            new_balance = balance - amount

    if new_balance < 0:
        raise InsufficientBalance(format_currency(balance), format_currency(abs(amount)))
    return new_balance


def status_after(tx_type: str, new_balance: Decimal, current_status: str) -> str:
    """Retainer status implied by a ledger entry."""
    if new_balance == 0:
        return "refunded" if tx_type == "refund" else "depleted"
    if tx_type == "refund":
        return current_status if current_status in CLOSED_STATUSES else "active"
    return "active"


def replay_ledger(transactions: List[Tuple[str, Decimal]]) -> Decimal:
    """Rebuild a balance from (type, amount) entries, oldest first."""
    balance = Decimal("0.00")
    for tx_type, amount in transactions:
        balance = apply_entry(balance, tx_type, amount)
    return balance


# ============================================================================
# Queries
# ============================================================================

async def _lock_retainer(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID
) -> ClientRetainer:
    result = await db.execute(
        select(ClientRetainer)
        .where(
            ClientRetainer.id == retainer_id,
            ClientRetainer.company_id == company_id
        )
        .with_for_update()
    )
    retainer = result.scalar_one_or_none()
    if retainer is None:
        raise RecordNotFound("Retainer not found")
    return retainer


async def list_retainers(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: Optional[uuid.UUID] = None
) -> List[Tuple[ClientRetainer, Optional[str]]]:
    """List retainers with their client's name, newest first."""
    query = (
        select(ClientRetainer, Client.name)
        .outerjoin(Client, Client.id == ClientRetainer.client_id)
        .where(ClientRetainer.company_id == company_id)
        .order_by(ClientRetainer.created_at.desc())
    )
    if client_id:
        query = query.where(ClientRetainer.client_id == client_id)

    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def get_retainer(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID
) -> ClientRetainer:
    result = await db.execute(
        select(ClientRetainer).where(
            ClientRetainer.id == retainer_id,
            ClientRetainer.company_id == company_id
        )
    )
    retainer = result.scalar_one_or_none()
    if retainer is None:
        raise RecordNotFound("Retainer not found")
    return retainer


async def get_active_retainer(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID
) -> Optional[ClientRetainer]:
    """The client's most recent active retainer, if any."""
    result = await db.execute(
        select(ClientRetainer)
        .where(
            ClientRetainer.company_id == company_id,
            ClientRetainer.client_id == client_id,
            ClientRetainer.status == "active"
        )
        .order_by(ClientRetainer.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_transactions(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID
) -> List[RetainerTransaction]:
    await get_retainer(db, company_id, retainer_id)
    result = await db.execute(
        select(RetainerTransaction)
        .where(
            RetainerTransaction.retainer_id == retainer_id,
            RetainerTransaction.company_id == company_id
        )
        .order_by(RetainerTransaction.created_at.desc())
    )
    return list(result.scalars().all())


# ============================================================================
# Ledger operations
# ============================================================================

def _record(
    db: AsyncSession,
    retainer: ClientRetainer,
    tx_type: str,
    amount: Decimal,
    description: str,
    user_id: Optional[uuid.UUID],
    invoice_id: Optional[uuid.UUID] = None
) -> RetainerTransaction:
    new_balance = apply_entry(retainer.current_balance, tx_type, amount)
    retainer.current_balance = new_balance
    retainer.status = status_after(tx_type, new_balance, retainer.status)

    transaction = RetainerTransaction(
        company_id=retainer.company_id,
        retainer_id=retainer.id,
        invoice_id=invoice_id,
        type=tx_type,
        amount=money(amount),
        balance_after=new_balance,
        description=description,
        performed_by=user_id
    )
    db.add(transaction)
    return transaction


async def create_retainer(
    db: AsyncSession,
    company_id: uuid.UUID,
    client_id: uuid.UUID,
    amount: Decimal,
    notes: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None
) -> ClientRetainer:
    """Open a retainer with an initial deposit."""
    amount = money(amount)
    if amount <= 0:
        raise InvalidOperation("Retainer amount must be greater than zero")

    result = await db.execute(
        select(Client.id).where(Client.id == client_id, Client.company_id == company_id)
    )
    if result.scalar_one_or_none() is None:
        raise RecordNotFound("Client not found")

    retainer = ClientRetainer(
        id=uuid.uuid4(),
        company_id=company_id,
        client_id=client_id,
        original_amount=amount,
        current_balance=Decimal("0.00"),
        status="active",
        notes=notes,
        created_by=user_id
    )
    db.add(retainer)
    _record(db, retainer, "deposit", amount, "Initial retainer deposit", user_id)

    await db.commit()
    logger.info(f"Retainer {retainer.id} opened for client {client_id}: {amount}")
    return retainer


async def add_funds(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID,
    amount: Decimal,
    description: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None
) -> ClientRetainer:
    retainer = await _lock_retainer(db, company_id, retainer_id)
    if retainer.status in CLOSED_STATUSES:
        raise InvalidOperation(f"Cannot add funds to a {retainer.status} retainer")

    _record(db, retainer, "deposit", amount, description or "Additional deposit", user_id)
    await db.commit()
    return retainer


async def apply_to_invoice(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID,
    invoice_id: uuid.UUID,
    amount: Decimal,
    user_id: Optional[uuid.UUID] = None
) -> Tuple[ClientRetainer, Invoice]:
    """
    Draw down a retainer against an invoice.

    The invoice's retainer credit accumulates and its total due is
    recomputed in the same transaction as the ledger entry.
    """
    retainer = await _lock_retainer(db, company_id, retainer_id)
    if retainer.status in CLOSED_STATUSES:
        raise InvalidOperation(f"Cannot draw from a {retainer.status} retainer")

    result = await db.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id, Invoice.company_id == company_id)
        .with_for_update()
    )
    invoice = result.scalar_one_or_none()
    if invoice is None:
        raise RecordNotFound("Invoice not found")
    if invoice.client_id != retainer.client_id:
        raise InvalidOperation("Invoice belongs to a different client")
    if invoice.status == "paid":
        raise InvalidOperation("Cannot apply a retainer to a paid invoice")

    outstanding = compute_total_due(invoice.subtotal, invoice.fees, invoice.retainer_applied)
    if money(amount) > outstanding:
        raise InvalidOperation(
            f"Only {format_currency(outstanding)} is still due on {invoice.invoice_number}"
        )

    _record(
        db, retainer, "draw_down", amount,
        f"Applied to invoice {invoice.invoice_number}",
        user_id,
        invoice_id=invoice.id
    )

    invoice.retainer_applied = money(invoice.retainer_applied) + money(amount)
    invoice.retainer_id = retainer.id
    invoice.total_due = compute_total_due(invoice.subtotal, invoice.fees, invoice.retainer_applied)
    log_activity(
        db, invoice, "retainer_applied",
        f"{format_currency(amount)} applied from retainer",
        user_id
    )

    await db.commit()
    logger.info(
        f"Applied {money(amount)} from retainer {retainer.id} to {invoice.invoice_number}"
    )
    return retainer, invoice


async def refund(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID,
    amount: Optional[Decimal] = None,
    description: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None
) -> ClientRetainer:
    """Refund part of the balance, or all of it when no amount is given."""
    retainer = await _lock_retainer(db, company_id, retainer_id)
    if retainer.status == "cancelled":
        raise InvalidOperation("Cannot refund a cancelled retainer")

    if amount is None:
        amount = retainer.current_balance
    _record(db, retainer, "refund", amount, description or "Retainer refund", user_id)

    await db.commit()
    return retainer


async def adjust(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID,
    amount: Decimal,
    description: str,
    user_id: Optional[uuid.UUID] = None
) -> ClientRetainer:
    """Correct the balance by a signed amount."""
    retainer = await _lock_retainer(db, company_id, retainer_id)
    if retainer.status == "cancelled":
        raise InvalidOperation("Cannot adjust a cancelled retainer")

    _record(db, retainer, "adjustment", amount, description, user_id)
    await db.commit()
    return retainer


async def cancel(
    db: AsyncSession,
    company_id: uuid.UUID,
    retainer_id: uuid.UUID
) -> ClientRetainer:
    retainer = await _lock_retainer(db, company_id, retainer_id)
    if money(retainer.current_balance) != 0:
        raise InvalidOperation("Refund the remaining balance before cancelling")

    retainer.status = "cancelled"
    await db.commit()
    return retainer
