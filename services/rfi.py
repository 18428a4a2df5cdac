"""
Information Request Service

Questionnaires the firm sends to clients after a project opens. The main
one is the Project Information Sheet (PIS): building details, applicant,
owner and contractor information needed to file with the Department of
Buildings.

A request copies its template's sections, starts out pre-filled from the
project, its proposal and the client, and is answered through a public
link carrying an unguessable access token.
"""

import logging
import re
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database.models import RfiTemplate, RfiRequest, Project, Proposal, Client, ClientContact
from services import gmail
from services.errors import RecordNotFound, InvalidOperation
from services.notifications import notify

logger = logging.getLogger("ordino.services.rfi")

FIELD_TYPES = (
    "text", "textarea", "email", "phone", "number", "select", "checkbox",
    "checkbox_group", "currency", "heading", "file_upload", "work_type_picker",
)
REQUEST_STATUSES = ("draft", "sent", "viewed", "submitted")

# Answers to repeated field groups arrive as <field_id>_<n>
_REPEAT_KEY = re.compile(r"^(?P<field>.+)_(?P<index>\d+)$")


def _field(field_id: str, label: str, type: str = "text", **extra) -> Dict[str, Any]:
    return {"id": field_id, "label": label, "type": type, **extra}


WORK_TYPES = [
    "Architectural", "Structural", "Mechanical", "Plumbing", "Sprinkler",
    "Fire Alarm", "Fire Suppression", "Standpipe", "Fuel Burning", "Boiler",
    "Fuel Storage", "Curb Cut", "Other",
]

DEFAULT_PIS_SECTIONS: List[Dict[str, Any]] = [
    {
        "id": "building_and_scope",
        "title": "Building Details & Scope of Work",
        "description": "Verify the property info and describe the work",
        "fields": [
            _field("project_address", "Project Address", required=True, width="full"),
            _field("borough", "Borough", width="half"),
            _field("block", "Block", width="half"),
            _field("lot", "Lot", width="half"),
            _field("floors", "Floor(s)", width="half"),
            _field("apt_numbers", "Apt #(s)", width="half"),
            _field("sq_ft", "Area (sq ft)", "number", width="half"),
            _field("scope_heading", "Scope of Work & Cost Breakdown", "heading"),
            _field("job_description", "Job Description", "textarea", required=True, width="full"),
            _field("work_types", "Select Applicable Work Types", "work_type_picker",
                   width="full", options=WORK_TYPES),
            _field("directive_14", "Directive 14?", "select", options=["Yes", "No"], width="half"),
            _field("plans_upload", "Upload Plans / Drawings", "file_upload", width="full",
                   accept=".pdf,.dwg,.dxf,.jpg,.jpeg,.png", maxFiles=10),
        ],
    },
    {
        "id": "applicant_and_owner",
        "title": "Applicant & Building Owner",
        "description": "Licensed professional and building owner details",
        "fields": [
            _field("applicant_heading", "Applicant (Architect / Engineer)", "heading",
                   repeatableGroup=True, maxRepeatGroup=5),
            _field("applicant_name", "Full Name", required=True, width="half"),
            _field("applicant_business_name", "Business Name", width="half"),
            _field("applicant_business_address", "Business Address", width="full"),
            _field("applicant_phone", "Phone", "phone", width="half"),
            _field("applicant_email", "Email", "email", width="half"),
            _field("applicant_nys_lic", "NYS License #", width="half"),
            _field("applicant_lic_type", "License Type", "select", options=["RA", "PE"], width="half"),
            _field("owner_heading", "Building Owner", "heading"),
            _field("ownership_type", "Ownership Type", "select", width="half", options=[
                "Individual", "Corporation", "Partnership", "Condo/Co-op", "Non-profit", "Government",
            ]),
            _field("owner_name", "Owner Name", required=True, width="half"),
            _field("owner_title", "Title", width="half"),
            _field("owner_company", "Company / Entity Name", width="full"),
            _field("owner_address", "Address", width="full"),
            _field("owner_email", "Email", "email", width="half"),
            _field("owner_phone", "Phone", "phone", width="half"),
        ],
    },
    {
        "id": "contractors_inspections",
        "title": "GC, TPP & Special Inspections",
        "description": "Check 'Same as Applicant' to reuse the applicant's details",
        "fields": [
            _field("gc_heading", "General Contractor", "heading"),
            _field("gc_same_as", "Same as Applicant", "checkbox", width="full"),
            _field("gc_name", "Name", width="half"),
            _field("gc_company", "Company", width="half"),
            _field("gc_phone", "Phone", "phone", width="half"),
            _field("gc_email", "Email", "email", width="half"),
            _field("gc_address", "Address", width="full"),
            _field("gc_hic_lic", "HIC License #", width="half"),
            _field("tpp_heading", "TPP Applicant", "heading"),
            _field("tpp_name", "Name", width="half"),
            _field("tpp_email", "Email", "email", width="half"),
            _field("rent_controlled", "Rent Controlled?", "select", options=["Yes", "No"], width="half"),
            _field("units_occupied", "Occupied Units", "number", width="half"),
            _field("sia_heading", "Special Inspections (SIA)", "heading"),
            _field("sia_name", "Name", width="half"),
            _field("sia_company", "Company", width="half"),
            _field("sia_phone", "Phone", "phone", width="half"),
            _field("sia_email", "Email", "email", width="half"),
            _field("sia_number", "SIA #", width="half"),
        ],
    },
]

# Which PIS fields a party's contact details land in
SECTION_FIELD_MAP: Dict[str, Dict[str, str]] = {
    "gc": {"name": "gc_name", "company": "gc_company", "phone": "gc_phone",
           "email": "gc_email", "address": "gc_address"},
    "owner": {"name": "owner_name", "company": "owner_company", "phone": "owner_phone",
              "email": "owner_email", "address": "owner_address"},
    "applicant": {"name": "applicant_name", "company": "applicant_business_name",
                  "phone": "applicant_phone", "email": "applicant_email",
                  "address": "applicant_business_address"},
    "sia": {"name": "sia_name", "company": "sia_company", "phone": "sia_phone", "email": "sia_email"},
    "tpp": {"name": "tpp_name", "email": "tpp_email"},
}


# ============================================================================
# Section layout
# ============================================================================

def validate_sections(sections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Check a questionnaire layout; field ids must be unique across the form."""
    if not sections:
        raise InvalidOperation("A questionnaire needs at least one section")

    seen = set()
    for section in sections:
        if not section.get("id") or not section.get("title"):
            raise InvalidOperation("Every section needs an id and a title")
        for field in section.get("fields") or []:
            field_id = field.get("id")
            if not field_id or not field.get("label"):
                raise InvalidOperation(f"Section {section['id']} has a field without an id or label")
            if field.get("type") not in FIELD_TYPES:
                raise InvalidOperation(f"Unknown field type for {field_id}: {field.get('type')}")
            if field_id in seen:
                raise InvalidOperation(f"Duplicate field id: {field_id}")
            seen.add(field_id)
    return sections


def answerable_fields(sections: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Fields that take an answer, keyed by id. Headings carry none."""
    return {
        field["id"]: field
        for section in sections
        for field in section.get("fields") or []
        if field.get("type") != "heading"
    }


def missing_required(sections: List[Dict[str, Any]], responses: Dict[str, Any]) -> List[str]:
    """Labels of required fields left blank."""
    missing = []
    for field_id, field in answerable_fields(sections).items():
        if not field.get("required"):
            continue
        value = responses.get(field_id)
        if value is None or (isinstance(value, (str, list, dict)) and not value):
            missing.append(field["label"])
        elif isinstance(value, str) and not value.strip():
            missing.append(field["label"])
    return missing


def _answer_key_allowed(key: str, fields: Dict[str, Dict[str, Any]]) -> bool:
    if key in fields:
        return True
    match = _REPEAT_KEY.match(key)
    return bool(match and match.group("field") in fields)


# ============================================================================
# Pre-fill
# ============================================================================

def contact_fields(
    party: str,
    contact: Optional[Any] = None,
    client: Optional[Any] = None
) -> Dict[str, str]:
    """
    PIS answers for one party taken from a client and/or one of its contacts.

    The contact's own details win over the client's; the client's name goes
    in the company field.
    """
    mapping = SECTION_FIELD_MAP.get(party)
    if not mapping:
        return {}

    fields: Dict[str, str] = {}
    if client is not None:
        for attr, key in (("name", "company"), ("email", "email"), ("phone", "phone"), ("address", "address")):
            value = getattr(client, attr, None)
            if value and key in mapping:
                fields[mapping[key]] = value
    if contact is not None:
        fields[mapping["name"]] = contact.name
        if contact.email and "email" in mapping:
            fields[mapping["email"]] = contact.email
        phone = contact.phone or contact.mobile
        if phone and "phone" in mapping:
            fields[mapping["phone"]] = phone
    return fields


def prior_section_fields(prior_responses: Dict[str, Any], party: str) -> Optional[Dict[str, str]]:
    """One party's answers from an earlier PIS, or None when it has none."""
    mapping = SECTION_FIELD_MAP.get(party)
    if not mapping:
        return None
    fields = {
        field_id: str(prior_responses[field_id])
        for field_id in mapping.values()
        if prior_responses.get(field_id)
    }
    return fields or None


def pis_prefill(
    project: Any,
    proposal: Optional[Any] = None,
    client: Optional[Any] = None,
    contact: Optional[Any] = None,
    prior_responses: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Starting answers for a project's PIS."""
    responses: Dict[str, Any] = {}

    # Parties the client answered for on an earlier project
    for party in SECTION_FIELD_MAP:
        responses.update(prior_section_fields(prior_responses or {}, party) or {})

    responses.update(contact_fields("owner", contact=contact, client=client))

    if proposal is not None:
        if proposal.property_address:
            responses["project_address"] = proposal.property_address
        if proposal.scope_of_work:
            responses["job_description"] = proposal.scope_of_work
        if "owner_name" not in responses and proposal.client_name:
            responses["owner_name"] = proposal.client_name
    if "job_description" not in responses and project.name:
        responses["job_description"] = project.name
    return responses


def public_link(request: RfiRequest) -> str:
    return f"{settings.public_form_url.rstrip('/')}/{request.access_token}"


# ============================================================================
# Templates
# ============================================================================

async def list_templates(db: AsyncSession, company_id: uuid.UUID) -> List[RfiTemplate]:
    result = await db.execute(
        select(RfiTemplate)
        .where(RfiTemplate.company_id == company_id)
        .order_by(RfiTemplate.created_at)
    )
    return list(result.scalars().all())


async def get_template(db: AsyncSession, company_id: uuid.UUID, template_id: uuid.UUID) -> RfiTemplate:
    result = await db.execute(
        select(RfiTemplate).where(RfiTemplate.id == template_id, RfiTemplate.company_id == company_id)
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise RecordNotFound("Template not found")
    return template


async def _clear_default(db: AsyncSession, company_id: uuid.UUID, keep_id: Optional[uuid.UUID] = None) -> None:
    stmt = (
        update(RfiTemplate)
        .where(RfiTemplate.company_id == company_id, RfiTemplate.is_default.is_(True))
        .values(is_default=False)
    )
    if keep_id:
        stmt = stmt.where(RfiTemplate.id != keep_id)
    await db.execute(stmt)


async def create_template(db: AsyncSession, company_id: uuid.UUID, data: Dict[str, Any]) -> RfiTemplate:
    """Create a template. Making it the default unsets the previous one."""
    sections = data.get("sections") or DEFAULT_PIS_SECTIONS
    validate_sections(sections)

    template_id = uuid.uuid4()
    if data.get("is_default"):
        await _clear_default(db, company_id)

    template = RfiTemplate(
        id=template_id,
        company_id=company_id,
        name=data["name"],
        description=data.get("description"),
        is_default=bool(data.get("is_default")),
        sections=sections
    )
    db.add(template)
    await db.commit()
    return template


async def update_template(
    db: AsyncSession,
    company_id: uuid.UUID,
    template_id: uuid.UUID,
    data: Dict[str, Any]
) -> RfiTemplate:
    template = await get_template(db, company_id, template_id)
    if "sections" in data:
        validate_sections(data["sections"])
    if data.get("is_default"):
        await _clear_default(db, company_id, keep_id=template.id)

    for key in ("name", "description", "is_default", "sections"):
        if key in data:
            setattr(template, key, data[key])
    await db.commit()
    return template


async def delete_template(db: AsyncSession, company_id: uuid.UUID, template_id: uuid.UUID) -> None:
    template = await get_template(db, company_id, template_id)
    await db.delete(template)
    await db.commit()


# ============================================================================
# Requests
# ============================================================================

async def list_requests(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: Optional[uuid.UUID] = None
) -> List[RfiRequest]:
    query = (
        select(RfiRequest)
        .where(RfiRequest.company_id == company_id)
        .order_by(RfiRequest.created_at.desc())
    )
    if project_id:
        query = query.where(RfiRequest.project_id == project_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_request(db: AsyncSession, company_id: uuid.UUID, request_id: uuid.UUID) -> RfiRequest:
    result = await db.execute(
        select(RfiRequest).where(RfiRequest.id == request_id, RfiRequest.company_id == company_id)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise RecordNotFound("Information request not found")
    return request


async def _pis_layout(
    db: AsyncSession,
    company_id: uuid.UUID,
    template_id: Optional[uuid.UUID]
) -> Tuple[Optional[uuid.UUID], List[Dict[str, Any]]]:
    """The chosen template, else the company default, else the built-in PIS."""
    if template_id:
        template = await get_template(db, company_id, template_id)
        return template.id, template.sections

    result = await db.execute(
        select(RfiTemplate)
        .where(RfiTemplate.company_id == company_id, RfiTemplate.is_default.is_(True))
        .limit(1)
    )
    template = result.scalar_one_or_none()
    if template is None:
        return None, DEFAULT_PIS_SECTIONS
    return template.id, template.sections


async def create_pis_request(
    db: AsyncSession,
    company_id: uuid.UUID,
    project_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
    template_id: Optional[uuid.UUID] = None,
    recipient_name: Optional[str] = None,
    recipient_email: Optional[str] = None
) -> RfiRequest:
    """
    Draft a PIS for a project.

    Answers start from the proposal, the client's primary contact and the
    client's last submitted PIS. The recipient defaults to the primary
    contact, then the client, then the proposal's addressee.
    """
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.company_id == company_id)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise RecordNotFound("Project not found")

    layout_id, sections = await _pis_layout(db, company_id, template_id)

    proposal = await db.get(Proposal, project.proposal_id) if project.proposal_id else None
    client = await db.get(Client, project.client_id) if project.client_id else None
    contact = None
    prior: Dict[str, Any] = {}
    if client is not None:
        result = await db.execute(
            select(ClientContact)
            .where(ClientContact.client_id == client.id, ClientContact.is_primary.is_(True))
            .limit(1)
        )
        contact = result.scalar_one_or_none()

        result = await db.execute(
            select(RfiRequest.responses)
            .join(Project, Project.id == RfiRequest.project_id)
            .where(
                RfiRequest.company_id == company_id,
                Project.client_id == client.id,
                RfiRequest.status == "submitted"
            )
            .order_by(RfiRequest.submitted_at.desc())
            .limit(1)
        )
        prior = result.scalar_one_or_none() or {}

    if not recipient_email:
        for source in (contact, client):
            if source is not None and source.email:
                recipient_name = recipient_name or source.name
                recipient_email = source.email
                break
        else:
            if proposal is not None:
                recipient_name = recipient_name or proposal.client_name
                recipient_email = proposal.client_email

    request = RfiRequest(
        id=uuid.uuid4(),
        company_id=company_id,
        template_id=layout_id,
        project_id=project.id,
        proposal_id=project.proposal_id,
        title=f"Project Information Sheet: {project.name}",
        recipient_name=recipient_name,
        recipient_email=recipient_email,
        status="draft",
        access_token=secrets.token_urlsafe(32),
        sections=sections,
        responses=pis_prefill(project, proposal, client, contact, prior),
        created_by=user_id
    )
    db.add(request)
    await db.commit()
    logger.info(f"Drafted PIS {request.id} for project {project.project_number}")
    return request


def _invitation_html(request: RfiRequest, link: str) -> str:
    greeting = f"Hi {request.recipient_name}," if request.recipient_name else "Hello,"
    return (
        f"<p>{greeting}</p>"
        f"<p>To get your filing started we need a few details about the building and "
        f"the people involved. Please fill in the form below; it takes about ten minutes.</p>"
        f'<p><a href="{link}">{request.title}</a></p>'
        f"<p>Thank you.</p>"
    )


async def send_request(
    db: AsyncSession,
    company_id: uuid.UUID,
    request_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = None,
    deliver: bool = True
) -> Tuple[RfiRequest, str]:
    """
    Mark a request as sent and return its public link.

    With deliver set the link is emailed to the recipient from the user's
    Gmail account first; a Gmail failure leaves the request unsent.
    """
    request = await get_request(db, company_id, request_id)
    if request.status == "submitted":
        raise InvalidOperation("This form has already been submitted")

    link = public_link(request)
    if deliver:
        if not request.recipient_email:
            raise InvalidOperation("The request has no recipient email")
        if user_id is None:
            raise InvalidOperation("A Gmail sender is required to email the form")
        await gmail.send_email(
            db, company_id, user_id,
            to=request.recipient_email,
            subject=request.title,
            html_body=_invitation_html(request, link)
        )

    if request.status == "draft":
        request.status = "sent"
    request.sent_at = datetime.now(timezone.utc)
    await db.commit()
    return request, link


# ============================================================================
# Public form
# ============================================================================

async def _by_token(db: AsyncSession, token: str) -> RfiRequest:
    result = await db.execute(select(RfiRequest).where(RfiRequest.access_token == token))
    request = result.scalar_one_or_none()
    # Drafts stay private until they are sent
    if request is None or request.status == "draft":
        raise RecordNotFound("Form not found")
    return request


async def open_public(db: AsyncSession, token: str) -> RfiRequest:
    """Load a form for its recipient; the first open marks it viewed."""
    request = await _by_token(db, token)
    if request.viewed_at is None:
        request.viewed_at = datetime.now(timezone.utc)
        if request.status == "sent":
            request.status = "viewed"
        await db.commit()
    return request


async def submit_public(db: AsyncSession, token: str, answers: Dict[str, Any]) -> RfiRequest:
    """
    Record the recipient's answers.

    Answers merge over the pre-filled ones. Keys that match no field are
    dropped. A form can be submitted once.
    """
    request = await _by_token(db, token)
    if request.status == "submitted":
        raise InvalidOperation("This form has already been submitted")

    fields = answerable_fields(request.sections)
    merged = dict(request.responses or {})
    merged.update({k: v for k, v in answers.items() if _answer_key_allowed(k, fields)})

    missing = missing_required(request.sections, merged)
    if missing:
        raise InvalidOperation(f"Please complete: {', '.join(missing)}")

    now = datetime.now(timezone.utc)
    request.responses = merged
    request.status = "submitted"
    request.submitted_at = now
    if request.viewed_at is None:
        request.viewed_at = now

    if request.created_by:
        notify(
            db, request.company_id, request.created_by,
            type="rfi_submitted",
            title=f"{request.recipient_name or 'The client'} completed {request.title}",
            link=f"/projects/{request.project_id}" if request.project_id else None,
            project_id=request.project_id
        )

    await db.commit()
    logger.info(f"Information request {request.id} submitted")
    return request
