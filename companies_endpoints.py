import logging
from typing import Optional

import azure.functions as func

from function_app import app
from repository.crm_records import company_to_dict
from schemas.auth_schema import COMPANY_CREATE
from schemas.fields import parse_positive_int
from services.crm_rbac import can_create_company, can_list_all_companies, can_list_companies, require
from shared.config import AppSettings
from shared.db import Company, SessionProvider
from shared.errors import InvalidRequest
from shared.http import RequestContext, run_pipeline

logger = logging.getLogger(__name__)


def _list_companies(ctx: RequestContext) -> func.HttpResponse:
    require(can_list_companies(ctx.role))
    raw_filter = str(ctx.req.params.get("companyId") or "").strip()
    company_filter = None
    if raw_filter:
        company_filter = parse_positive_int(raw_filter)
        if company_filter is None:
            raise InvalidRequest("companyId must be a positive integer")

    with ctx.provider.session() as db:
        query = db.query(Company).filter(Company.deleted_at.is_(None))
        if not can_list_all_companies(ctx.role):
            # Tenant admins only ever see their own company, whatever they ask for.
            query = query.filter(Company.id == ctx.company_id)
        elif company_filter is not None:
            query = query.filter(Company.id == company_filter)
        companies = query.order_by(Company.name.asc(), Company.id.asc()).all()
        return ctx.json({"companies": [company_to_dict(company) for company in companies]})


def _create_company(ctx: RequestContext) -> func.HttpResponse:
    require(can_create_company(ctx.role))
    values = COMPANY_CREATE.clean(ctx.body())
    with ctx.provider.transaction() as db:
        company = Company(
            name=values["name"],
            domain=values.get("domain"),
            address=values.get("address"),
            created_by=ctx.user_id,
        )
        db.add(company)
        db.flush()
        payload = company_to_dict(company)
    logger.info("Company %s created by user %s", payload["id"], ctx.user_id)
    return ctx.json(payload, status_code=201)


def handle_companies(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _list_companies, "POST": _create_company},
        provider=provider,
        settings=settings,
        operation="companies",
    )


@app.function_name(name="Companies")
@app.route(route="companies", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def companies(req: func.HttpRequest) -> func.HttpResponse:
    return handle_companies(req)
