import logging
from datetime import datetime
from typing import List, Optional

import azure.functions as func

from function_app import app
from repository.tenant_repo import count_records, tenant_query
from shared.config import AppSettings
from shared.db import Contact, Customer, Invoice, SessionProvider, Task, utcnow
from shared.http import RequestContext, query_int, run_pipeline

logger = logging.getLogger(__name__)


def monthly_revenue(db, company_id: int, year: int) -> List[float]:
    """Paid invoice totals per calendar month of ``year``, January first."""
    totals = [0.0] * 12
    rows = (
        tenant_query(db, Invoice, company_id)
        .with_entities(Invoice.due_date, Invoice.amount)
        .filter(
            Invoice.status == "paid",
            Invoice.due_date >= datetime(year, 1, 1),
            Invoice.due_date < datetime(year + 1, 1, 1),
        )
        .all()
    )
    for due_date, amount in rows:
        totals[due_date.month - 1] += float(amount or 0)
    return [round(total, 2) for total in totals]


def _dashboard(ctx: RequestContext) -> func.HttpResponse:
    year = query_int(ctx.req, "year", default=utcnow().year, minimum=1970, maximum=9998)
    with ctx.provider.session() as db:
        payload = {
            "year": year,
            "totalCompanies": count_records(db, Customer, ctx.company_id),
            "totalContacts": count_records(db, Contact, ctx.company_id),
            "totalTasks": count_records(db, Task, ctx.company_id),
            "monthlyRevenue": monthly_revenue(db, ctx.company_id, year),
        }
    return ctx.json(payload)


def handle_dashboard(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(req, handlers={"GET": _dashboard}, provider=provider, settings=settings, operation="dashboard")


@app.function_name(name="Dashboard")
@app.route(route="dashboard", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def dashboard(req: func.HttpRequest) -> func.HttpResponse:
    return handle_dashboard(req)
