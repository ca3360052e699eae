from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import azure.functions as func
from sqlalchemy.orm import Session

from function_app import app
from repository.crm_records import (
    connection_to_dict,
    contact_to_dict,
    contract_to_dict,
    customer_to_dict,
    event_to_dict,
    form_to_dict,
    invoice_to_dict,
    project_to_dict,
    proposal_to_dict,
    task_to_dict,
)
from repository.tenant_repo import get_record
from schemas import crm_schema
from services.crm_resources import QueryFilter, ResourceSpec, handle_resource
from shared.config import AppSettings
from shared.db import (
    Connection,
    Contact,
    Contract,
    Customer,
    Event,
    Form,
    Invoice,
    Project,
    Proposal,
    SessionProvider,
    Task,
    User,
)
from shared.errors import InvalidRequest
from shared.http import RequestContext

logger = logging.getLogger(__name__)


def _check_task_references(db: Session, ctx: RequestContext, values: Dict[str, Any]) -> None:
    errors = []
    assigned_to = values.get("assigned_to")
    if assigned_to is not None:
        assignee = (
            db.query(User.id)
            .filter(User.id == assigned_to, User.company_id == ctx.company_id)
            .one_or_none()
        )
        if assignee is None:
            errors.append("assignedTo does not reference a user in this company")
    project_id = values.get("project_id")
    if project_id is not None and get_record(db, Project, ctx.company_id, project_id) is None:
        errors.append("projectId does not reference a project in this company")
    if errors:
        raise InvalidRequest("; ".join(errors))


CONTACTS = ResourceSpec(
    name="Contact",
    plural="contacts",
    model=Contact,
    create_schema=crm_schema.CONTACT_CREATE,
    update_schema=crm_schema.CONTACT_UPDATE,
    serializer=contact_to_dict,
    order_by="name",
    descending=False,
    search_columns=("name", "email", "phone"),
)

CUSTOMERS = ResourceSpec(
    name="Customer",
    plural="customers",
    model=Customer,
    create_schema=crm_schema.CUSTOMER_CREATE,
    update_schema=crm_schema.CUSTOMER_UPDATE,
    serializer=customer_to_dict,
    search_columns=("name", "domain", "industry"),
)

INVOICES = ResourceSpec(
    name="Invoice",
    plural="invoices",
    model=Invoice,
    create_schema=crm_schema.INVOICE_CREATE,
    update_schema=crm_schema.INVOICE_UPDATE,
    serializer=invoice_to_dict,
    search_columns=("customer_id", "description"),
    filters=(QueryFilter("status", "status"), QueryFilter("customerId", "customer_id", str.strip)),
)

CONTRACTS = ResourceSpec(
    name="Contract",
    plural="contracts",
    model=Contract,
    create_schema=crm_schema.CONTRACT_CREATE,
    update_schema=crm_schema.CONTRACT_UPDATE,
    serializer=contract_to_dict,
    order_by="start_date",
    search_columns=("name", "details"),
    updater_column="updated_by",
)

PROPOSALS = ResourceSpec(
    name="Proposal",
    plural="proposals",
    model=Proposal,
    create_schema=crm_schema.PROPOSAL_CREATE,
    update_schema=crm_schema.PROPOSAL_UPDATE,
    serializer=proposal_to_dict,
    search_columns=("title", "description"),
    filters=(QueryFilter("status", "status"),),
)

PROJECTS = ResourceSpec(
    name="Project",
    plural="projects",
    model=Project,
    create_schema=crm_schema.PROJECT_CREATE,
    update_schema=crm_schema.PROJECT_UPDATE,
    serializer=project_to_dict,
    search_columns=("name", "description"),
)

TASKS = ResourceSpec(
    name="Task",
    plural="tasks",
    model=Task,
    create_schema=crm_schema.TASK_CREATE,
    update_schema=crm_schema.TASK_UPDATE,
    serializer=task_to_dict,
    search_columns=("title", "description"),
    filters=(
        QueryFilter("status", "status"),
        QueryFilter.by_id("projectId", "project_id"),
        QueryFilter.by_id("assignedTo", "assigned_to"),
    ),
    before_write=_check_task_references,
)

FORMS = ResourceSpec(
    name="Form",
    plural="forms",
    model=Form,
    create_schema=crm_schema.FORM_CREATE,
    serializer=form_to_dict,
    search_columns=("name",),
    methods=("GET", "POST", "DELETE"),
)

CONNECTIONS = ResourceSpec(
    name="Connection",
    plural="connections",
    model=Connection,
    create_schema=crm_schema.CONNECTION_CREATE,
    serializer=connection_to_dict,
    search_columns=("name", "email", "phone"),
    methods=("GET", "POST", "DELETE"),
)

EVENTS = ResourceSpec(
    name="Event",
    plural="events",
    model=Event,
    create_schema=crm_schema.EVENT_CREATE,
    update_schema=crm_schema.EVENT_UPDATE,
    serializer=event_to_dict,
    order_by="start",
    descending=False,
    search_columns=("title", "description"),
)


def _methods(spec: ResourceSpec):
    return [*spec.methods, "OPTIONS"]


def handle_contacts(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, CONTACTS, provider=provider, settings=settings)


def handle_customers(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, CUSTOMERS, provider=provider, settings=settings)


def handle_invoices(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, INVOICES, provider=provider, settings=settings)


def handle_contracts(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, CONTRACTS, provider=provider, settings=settings)


def handle_proposals(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, PROPOSALS, provider=provider, settings=settings)


def handle_projects(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, PROJECTS, provider=provider, settings=settings)


def handle_tasks(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, TASKS, provider=provider, settings=settings)


def handle_forms(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, FORMS, provider=provider, settings=settings)


def handle_network(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, CONNECTIONS, provider=provider, settings=settings)


def handle_calendar(req: func.HttpRequest, provider: Optional[SessionProvider] = None, settings: Optional[AppSettings] = None):
    return handle_resource(req, EVENTS, provider=provider, settings=settings)


@app.function_name(name="CrmContacts")
@app.route(route="contacts/{id?}", methods=_methods(CONTACTS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_contacts(req: func.HttpRequest) -> func.HttpResponse:
    return handle_contacts(req)


@app.function_name(name="CrmCustomers")
@app.route(route="customers/{id?}", methods=_methods(CUSTOMERS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_customers(req: func.HttpRequest) -> func.HttpResponse:
    return handle_customers(req)


@app.function_name(name="CrmInvoices")
@app.route(route="invoices/{id?}", methods=_methods(INVOICES), auth_level=func.AuthLevel.ANONYMOUS)
def crm_invoices(req: func.HttpRequest) -> func.HttpResponse:
    return handle_invoices(req)


@app.function_name(name="CrmContracts")
@app.route(route="contracts/{id?}", methods=_methods(CONTRACTS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_contracts(req: func.HttpRequest) -> func.HttpResponse:
    return handle_contracts(req)


@app.function_name(name="CrmProposals")
@app.route(route="proposals/{id?}", methods=_methods(PROPOSALS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_proposals(req: func.HttpRequest) -> func.HttpResponse:
    return handle_proposals(req)


@app.function_name(name="CrmProjects")
@app.route(route="projects/{id?}", methods=_methods(PROJECTS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_projects(req: func.HttpRequest) -> func.HttpResponse:
    return handle_projects(req)


@app.function_name(name="CrmTasks")
@app.route(route="tasks/{id?}", methods=_methods(TASKS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_tasks(req: func.HttpRequest) -> func.HttpResponse:
    return handle_tasks(req)


@app.function_name(name="CrmForms")
@app.route(route="forms/{id?}", methods=_methods(FORMS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_forms(req: func.HttpRequest) -> func.HttpResponse:
    return handle_forms(req)


@app.function_name(name="CrmNetwork")
@app.route(route="network/{id?}", methods=_methods(CONNECTIONS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_network(req: func.HttpRequest) -> func.HttpResponse:
    return handle_network(req)


@app.function_name(name="CrmCalendar")
@app.route(route="calendar/{id?}", methods=_methods(EVENTS), auth_level=func.AuthLevel.ANONYMOUS)
def crm_calendar(req: func.HttpRequest) -> func.HttpResponse:
    return handle_calendar(req)
