"""
Seed a demo company into the database.

Creates an admin user, a client with a contact, a signed proposal (and
so a project), an invoice, a funded retainer, a monthly billing schedule
and an RFP source. Safe to re-run: an existing demo user is left alone.

Usage:
    python scripts/seed_demo.py [--reset]

--reset drops and recreates every table first.
"""

import asyncio
import sys
import uuid
from datetime import date
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select

from api.auth.password import hash_password
from config.logging_config import setup_logging
from database.connection import get_db_context, init_db
from database.models import ClientContact, Company, CompanyMember, User
from services import billing_schedules, clients, invoices, proposals, retainers, rfps

DEMO_EMAIL = "demo@ordino.local"
DEMO_PASSWORD = "demo-password"


async def seed_demo(reset: bool = False):
    await init_db(drop_existing=reset)

    async with get_db_context() as db:
        result = await db.execute(select(User).where(User.email == DEMO_EMAIL))
        if result.scalar_one_or_none():
            print(f"User '{DEMO_EMAIL}' already exists, skipping")
            return

        user = User(id=uuid.uuid4(), email=DEMO_EMAIL, password_hash=hash_password(DEMO_PASSWORD), full_name="Demo Admin")
        company = Company(
            id=uuid.uuid4(),
            name="Demo Expediting LLC",
            slug="demo-expediting",
            email="office@demo-expediting.local",
            phone="(212) 555-0100",
            address="100 Broadway\nNew York, NY 10005"
        )
        db.add_all([user, company])
        db.add(CompanyMember(company_id=company.id, user_id=user.id, role="admin"))
        await db.commit()
        print(f"Created company: {company.name}")

        client = await clients.create_client(db, company.id, {
            "name": "Harbor View Properties",
            "client_type": "owner",
            "email": "ap@harborview.local",
            "address": "45 Water St\nBrooklyn, NY 11201",
        })
        db.add(ClientContact(
            company_id=company.id,
            client_id=client.id,
            name="Dana Ortiz",
            title="Project Manager",
            email="dana@harborview.local",
            is_primary=True
        ))
        await db.commit()
        print(f"Created client: {client.name}")

        proposal = await proposals.create_proposal(db, company.id, {
            "title": "Alteration Type 1 - 45 Water St",
            "client_id": client.id,
            "client_name": client.name,
            "client_email": client.email,
            "property_address": "45 Water St, Brooklyn, NY",
            "payment_terms": "Net 30",
            "items": [
                {"name": "DOB filing", "quantity": Decimal("1"), "unit_price": Decimal("3500")},
                {"name": "Plan examiner meetings", "quantity": Decimal("4"), "unit_price": Decimal("450")},
            ],
            "milestones": [
                {"name": "Filing", "percentage": Decimal("50")},
                {"name": "Approval", "percentage": Decimal("50")},
            ],
        }, user_id=user.id)
        await proposals.send_proposal(db, company.id, proposal.id)
        proposal, project = await proposals.sign_internal(
            db, company.id, proposal.id, user.id, assigned_pm_id=user.id
        )
        print(f"Signed {proposal.proposal_number}, created project {project.project_number}")

        invoice = await invoices.create_invoice(db, company.id, {
            "project_id": project.id,
            "client_id": client.id,
            "line_items": [{"description": "DOB filing", "quantity": 1, "rate": Decimal("3500")}],
            "payment_terms": "Net 30",
        }, user_id=user.id)
        print(f"Created invoice: {invoice.invoice_number}")

        retainer = await retainers.create_retainer(
            db, company.id, client.id, Decimal("2500"), notes="Initial retainer", user_id=user.id
        )
        print(f"Created retainer with balance {retainer.current_balance}")

        await billing_schedules.create_schedule(db, company.id, project.id, {
            "service_name": "Monthly permit monitoring",
            "billing_method": "fixed",
            "billing_value": Decimal("400"),
            "frequency": "monthly",
            "next_bill_date": date.today().replace(day=1),
        }, user_id=user.id)

        await rfps.create_source(db, company.id, {
            "source_name": "NYC City Record",
            "source_url": "https://a856-cityrecord.nyc.gov/",
            "source_type": "web",
        })
        await rfps.upsert_monitoring_rule(db, company.id, {
            "keyword_include": ["permit", "expediting", "DOB", "code consulting"],
            "keyword_exclude": ["janitorial"],
            "min_relevance_score": 60,
        })

    print(f"\n✅ Demo data seeded. Sign in as {DEMO_EMAIL} / {DEMO_PASSWORD}")


if __name__ == "__main__":
    setup_logging(log_level="WARNING", process="seed")
    asyncio.run(seed_demo(reset="--reset" in sys.argv[1:]))
