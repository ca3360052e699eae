import logging
from typing import Optional

import azure.functions as func

from function_app import app
from repository.crm_records import time_entry_to_dict
from repository.tenant_repo import get_record, tenant_query
from schemas.crm_schema import TIME_ENTRY_START
from schemas.fields import UTC_DATETIME, FieldSpec, Schema, parse_positive_int
from services.crm_rbac import is_tenant_admin, require
from shared.config import AppSettings
from shared.db import Project, SessionProvider, TimeEntry, utcnow
from shared.errors import Conflict, Forbidden, InvalidRequest, NotFound
from shared.http import RequestContext, query_int, run_pipeline

logger = logging.getLogger(__name__)

STOP_ENTRY = Schema(fields=(FieldSpec("endTime", UTC_DATETIME, column="end_time"),))
ENTRY_NOT_FOUND = "Time entry not found"


def _running_entry(db, company_id: int, user_id: int) -> Optional[TimeEntry]:
    return (
        tenant_query(db, TimeEntry, company_id)
        .filter(TimeEntry.user_id == user_id, TimeEntry.end_time.is_(None))
        .first()
    )


def _list_entries(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id()
    with ctx.provider.session() as db:
        if record_id is not None:
            entry = get_record(db, TimeEntry, ctx.company_id, record_id)
            if entry is None:
                raise NotFound(ENTRY_NOT_FOUND)
            return ctx.json(time_entry_to_dict(entry))

        query = tenant_query(db, TimeEntry, ctx.company_id)
        for param, column in (("userId", TimeEntry.user_id), ("projectId", TimeEntry.project_id)):
            raw = str(ctx.req.params.get(param) or "").strip()
            if raw:
                parsed = parse_positive_int(raw)
                if parsed is None:
                    raise InvalidRequest(f"Invalid {param} filter")
                query = query.filter(column == parsed)
        if str(ctx.req.params.get("running") or "").strip().lower() == "true":
            query = query.filter(TimeEntry.end_time.is_(None))
        entries = (
            query.order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc())
            .offset(query_int(ctx.req, "offset", default=0, minimum=0))
            .limit(query_int(ctx.req, "limit", default=100, minimum=1, maximum=500))
            .all()
        )
        return ctx.json({"timeEntries": [time_entry_to_dict(entry) for entry in entries]})


def _start_entry(ctx: RequestContext) -> func.HttpResponse:
    values = TIME_ENTRY_START.clean(ctx.body())
    with ctx.provider.transaction() as db:
        if _running_entry(db, ctx.company_id, ctx.user_id) is not None:
            raise Conflict("A timer is already running")
        project_id = values.get("project_id")
        if project_id is not None and get_record(db, Project, ctx.company_id, project_id) is None:
            raise InvalidRequest("projectId does not reference a project in this company")
        entry = TimeEntry(
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            project_id=project_id,
            description=values.get("description"),
            start_time=values.get("start_time") or utcnow(),
        )
        db.add(entry)
        db.flush()
        payload = time_entry_to_dict(entry)
    return ctx.json(payload, status_code=201)


def _stop_entry(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id(required=True)
    values = STOP_ENTRY.clean(ctx.body())
    with ctx.provider.transaction() as db:
        entry = get_record(db, TimeEntry, ctx.company_id, record_id)
        if entry is None:
            raise NotFound(ENTRY_NOT_FOUND)
        if entry.user_id != ctx.user_id:
            raise Forbidden("Only the owner can stop this timer")
        if entry.end_time is not None:
            raise Conflict("Timer already stopped")
        end_time = values.get("end_time") or utcnow()
        if end_time < entry.start_time:
            raise InvalidRequest("endTime must not be before startTime")
        entry.end_time = end_time
        entry.duration_seconds = int((end_time - entry.start_time).total_seconds())
        db.flush()
        payload = time_entry_to_dict(entry)
    logger.info("Stopped time entry %s after %ss", payload["id"], payload["durationSeconds"])
    return ctx.json(payload)


def _delete_entry(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id(required=True)
    with ctx.provider.transaction() as db:
        entry = get_record(db, TimeEntry, ctx.company_id, record_id)
        if entry is None:
            raise NotFound(ENTRY_NOT_FOUND)
        require(entry.user_id == ctx.user_id or is_tenant_admin(ctx.role))
        db.delete(entry)
    return ctx.no_content()


def handle_time_entries(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _list_entries, "POST": _start_entry, "DELETE": _delete_entry},
        provider=provider,
        settings=settings,
        operation="time-entries",
    )


def handle_stop_time_entry(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"POST": _stop_entry},
        provider=provider,
        settings=settings,
        operation="time-entries/stop",
    )


@app.function_name(name="TimeEntries")
@app.route(route="time-entries/{id?}", methods=["GET", "POST", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def time_entries(req: func.HttpRequest) -> func.HttpResponse:
    return handle_time_entries(req)


@app.function_name(name="TimeEntryStop")
@app.route(route="time-entries/{id}/stop", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def time_entry_stop(req: func.HttpRequest) -> func.HttpResponse:
    return handle_stop_time_entry(req)
