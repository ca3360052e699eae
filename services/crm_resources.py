"""
Generic CRUD handling for the tenant-scoped CRM records.

Each record type is described by a ResourceSpec: its model, the body schemas
for create and update, the serializer, and which query parameters filter the
list. ``handle_resource`` turns a spec into method handlers and runs them
through the shared request pipeline, so every resource answers with the same
status codes and error bodies.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Sequence, Tuple, Type

import azure.functions as func
from sqlalchemy.orm import Session

from repository.tenant_repo import create_record, delete_record, get_record, list_records, update_record
from schemas.fields import Schema, parse_positive_int
from shared.config import AppSettings
from shared.db import SessionProvider
from shared.errors import InvalidRequest, NotFound
from shared.http import Handler, RequestContext, query_int, run_pipeline

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100
MAX_PAGE_SIZE = 500

ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _text_filter(raw: str) -> Any:
    return raw.strip().lower()


def _id_filter(raw: str) -> Any:
    return parse_positive_int(raw)


@dataclass(frozen=True)
class QueryFilter:
    param: str
    column: str
    parse: Callable[[str], Any] = _text_filter

    @classmethod
    def by_id(cls, param: str, column: str) -> "QueryFilter":
        return cls(param=param, column=column, parse=_id_filter)


BeforeWrite = Callable[[Session, RequestContext, Dict[str, Any]], None]


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    plural: str
    model: Type
    create_schema: Schema
    serializer: Callable[[Any], Dict[str, Any]]
    update_schema: Optional[Schema] = None
    order_by: str = "created_at"
    descending: bool = True
    search_columns: Sequence[str] = ()
    filters: Tuple[QueryFilter, ...] = field(default_factory=tuple)
    methods: Tuple[str, ...] = ALL_METHODS
    creator_column: Optional[str] = "created_by"
    updater_column: Optional[str] = None
    before_write: Optional[BeforeWrite] = None

    @property
    def not_found_message(self) -> str:
        return f"{self.name} not found"


def _list_filters(ctx: RequestContext, spec: ResourceSpec) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for query_filter in spec.filters:
        raw = str(ctx.req.params.get(query_filter.param) or "").strip()
        if not raw:
            continue
        parsed = query_filter.parse(raw)
        if parsed is None:
            raise InvalidRequest(f"Invalid {query_filter.param} filter")
        values[query_filter.column] = parsed
    return values


def _handle_get(ctx: RequestContext, spec: ResourceSpec) -> func.HttpResponse:
    record_id = ctx.record_id()
    with ctx.provider.session() as db:
        if record_id is not None:
            record = get_record(db, spec.model, ctx.company_id, record_id)
            if record is None:
                raise NotFound(spec.not_found_message)
            return ctx.json(spec.serializer(record))

        records = list_records(
            db,
            spec.model,
            ctx.company_id,
            search=ctx.req.params.get("search"),
            search_columns=spec.search_columns,
            filters=_list_filters(ctx, spec),
            order_by=spec.order_by,
            descending=spec.descending,
            limit=query_int(ctx.req, "limit", default=DEFAULT_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE),
            offset=query_int(ctx.req, "offset", default=0, minimum=0),
        )
        return ctx.json({spec.plural: [spec.serializer(record) for record in records]})


def _handle_create(ctx: RequestContext, spec: ResourceSpec) -> func.HttpResponse:
    values = spec.create_schema.clean(ctx.body())
    with ctx.provider.transaction() as db:
        if spec.before_write:
            spec.before_write(db, ctx, values)
        record = create_record(
            db,
            spec.model,
            ctx.company_id,
            values,
            creator_column=spec.creator_column,
            creator_id=ctx.user_id,
        )
        if spec.updater_column:
            setattr(record, spec.updater_column, ctx.user_id)
        db.flush()
        payload = spec.serializer(record)
    logger.info("Created %s %s for company %s", spec.name.lower(), payload.get("id"), ctx.company_id)
    return ctx.json(payload, status_code=201)


def _handle_update(ctx: RequestContext, spec: ResourceSpec) -> func.HttpResponse:
    schema = spec.update_schema or spec.create_schema
    body = ctx.body()
    record_id = ctx.record_id(required=True, body=body)
    values = schema.clean(body, partial=True)
    with ctx.provider.transaction() as db:
        record = get_record(db, spec.model, ctx.company_id, record_id)
        if record is None:
            raise NotFound(spec.not_found_message)

        # Cross-field rules apply to the record as it will be stored.
        merged = {target: getattr(record, target) for target in schema.targets}
        merged.update(values)
        errors = schema.check(merged)
        if errors:
            raise InvalidRequest("; ".join(errors))
        if spec.before_write:
            spec.before_write(db, ctx, values)

        record = update_record(
            db,
            spec.model,
            ctx.company_id,
            record_id,
            values,
            updater_column=spec.updater_column,
            updater_id=ctx.user_id,
        )
        if record is None:
            raise NotFound(spec.not_found_message)
        payload = spec.serializer(record)
    return ctx.json(payload)


def _handle_delete(ctx: RequestContext, spec: ResourceSpec) -> func.HttpResponse:
    record_id = ctx.record_id(required=True)
    with ctx.provider.transaction() as db:
        deleted = delete_record(db, spec.model, ctx.company_id, record_id)
    if not deleted:
        raise NotFound(spec.not_found_message)
    logger.info("Deleted %s %s for company %s", spec.name.lower(), record_id, ctx.company_id)
    return ctx.no_content()


def resource_handlers(spec: ResourceSpec) -> Dict[str, Handler]:
    available: Dict[str, Handler] = {
        "GET": lambda ctx: _handle_get(ctx, spec),
        "POST": lambda ctx: _handle_create(ctx, spec),
        "PUT": lambda ctx: _handle_update(ctx, spec),
        "PATCH": lambda ctx: _handle_update(ctx, spec),
        "DELETE": lambda ctx: _handle_delete(ctx, spec),
    }
    return {method: available[method] for method in spec.methods}


def handle_resource(
    req: func.HttpRequest,
    spec: ResourceSpec,
    *,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers=resource_handlers(spec),
        provider=provider,
        settings=settings,
        operation=spec.plural,
    )
