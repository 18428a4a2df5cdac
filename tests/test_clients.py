"""Clients and contacts: one primary contact per client."""

import asyncio
import uuid
from types import SimpleNamespace

import pytest

from conftest import FakeResult, FakeSession
from database.models import ClientContact
from services import clients
from services.errors import RecordNotFound


class RecordingSession(FakeSession):
    """FakeSession that keeps the SQL of every statement it runs."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.statements = []

    async def execute(self, statement):
        self.statements.append(str(statement))
        return await super().execute(statement)

    def updates(self):
        return [sql for sql in self.statements if sql.startswith("UPDATE client_contacts")]


def _client(company_id):
    return SimpleNamespace(id=uuid.uuid4(), company_id=company_id, name="Main Street Holdings LLC", contacts=[])


def _contact(client_id, **overrides):
    values = dict(
        id=uuid.uuid4(),
        client_id=client_id,
        name="Dana Owner",
        title=None,
        email="dana@mainst.example",
        phone=None,
        mobile=None,
        is_primary=False,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestAddContact:

    def test_primary_contact_demotes_the_others(self, company):
        client = _client(company.id)
        db = RecordingSession(results=[FakeResult([client])])

        contact = asyncio.run(clients.add_contact(db, company.id, client.id, {
            "name": "Dana Owner", "phone": "7185550102", "is_primary": True,
        }))

        assert isinstance(contact, ClientContact)
        assert contact.is_primary is True
        assert contact.phone == "(718) 555-0102"
        [sql] = db.updates()
        assert "is_primary" in sql
        assert "client_contacts.id !=" not in sql
        assert db.commits == 1

    def test_secondary_contact_leaves_primary_alone(self, company):
        client = _client(company.id)
        db = RecordingSession(results=[FakeResult([client])])

        contact = asyncio.run(clients.add_contact(db, company.id, client.id, {"name": "Sam Assistant"}))

        assert contact.is_primary is False
        assert db.updates() == []

    def test_unknown_client(self, company):
        with pytest.raises(RecordNotFound):
            asyncio.run(clients.add_contact(FakeSession(), company.id, uuid.uuid4(), {"name": "Nobody"}))


class TestUpdateContact:

    def test_promoting_keeps_only_this_contact_primary(self, company):
        contact = _contact(uuid.uuid4())
        db = RecordingSession(results=[FakeResult([contact])])

        asyncio.run(clients.update_contact(db, company.id, contact.id, {"is_primary": True}))

        assert contact.is_primary is True
        [sql] = db.updates()
        assert "client_contacts.id !=" in sql
        assert db.commits == 1

    def test_plain_edit_does_not_touch_other_contacts(self, company):
        contact = _contact(uuid.uuid4(), is_primary=True)
        db = RecordingSession(results=[FakeResult([contact])])

        asyncio.run(clients.update_contact(db, company.id, contact.id, {"title": "Owner", "mobile": "917.555.0199"}))

        assert contact.title == "Owner"
        assert contact.mobile == "(917) 555-0199"
        assert contact.is_primary is True
        assert db.updates() == []
