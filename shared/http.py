from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import azure.functions as func

from crm_shared import SessionClaim, authenticate_header
from schemas.fields import MAX_ID, parse_positive_int
from shared.config import AppSettings, get_settings
from shared.db import SessionProvider, resolve_provider
from shared.errors import ApiError, InvalidRequest, MethodNotSupported, Unauthenticated
from utils.cors import build_cors_headers

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"


@dataclass
class RequestContext:
    """Everything a method handler needs after authentication succeeded."""

    req: func.HttpRequest
    claim: Optional[SessionClaim]
    provider: SessionProvider
    settings: AppSettings
    cors: Dict[str, str]

    @property
    def company_id(self) -> int:
        if self.claim is None:
            raise Unauthenticated()
        return self.claim.company_id

    @property
    def user_id(self) -> int:
        if self.claim is None:
            raise Unauthenticated()
        return self.claim.user_id

    @property
    def role(self) -> str:
        return self.claim.role if self.claim else ""

    def body(self) -> Dict[str, Any]:
        return read_json_body(self.req)

    def json(self, data: Any, status_code: int = 200) -> func.HttpResponse:
        return json_response(data, status_code=status_code, cors=self.cors)

    def no_content(self) -> func.HttpResponse:
        return no_content(self.cors)

    def record_id(self, *, required: bool = False, body: Optional[Mapping[str, Any]] = None) -> Optional[int]:
        return resolve_record_id(self.req, required=required, body=body)


Handler = Callable[[RequestContext], func.HttpResponse]


def json_response(data: Any, *, status_code: int = 200, cors: Optional[Dict[str, str]] = None) -> func.HttpResponse:
    return func.HttpResponse(
        json.dumps(data),
        status_code=status_code,
        mimetype="application/json",
        headers=cors or {},
    )


def no_content(cors: Optional[Dict[str, str]] = None) -> func.HttpResponse:
    return func.HttpResponse("", status_code=204, headers=cors or {})


def error_response(message: str, *, status_code: int, cors: Optional[Dict[str, str]] = None) -> func.HttpResponse:
    return json_response({"error": message}, status_code=status_code, cors=cors)


def read_json_body(req: func.HttpRequest) -> Dict[str, Any]:
    """Parse the request body as a JSON object; anything else is a 400."""
    raw = req.get_body() or b""
    if not raw.strip():
        return {}
    try:
        payload = req.get_json()
    except ValueError:
        raise InvalidRequest("Invalid JSON body") from None
    if not isinstance(payload, dict):
        raise InvalidRequest("Invalid JSON body")
    return payload


def resolve_record_id(
    req: func.HttpRequest,
    *,
    required: bool = False,
    body: Optional[Mapping[str, Any]] = None,
) -> Optional[int]:
    """
    Look up the record id from the route, then the query string, then the body.
    Present but non-integer ids are rejected rather than ignored.
    """
    raw = (req.route_params or {}).get("id")
    if raw in (None, ""):
        raw = req.params.get("id")
    if raw in (None, "") and body is not None:
        raw = body.get("id")
    if raw in (None, ""):
        if required:
            raise InvalidRequest("id is required")
        return None
    parsed = parse_positive_int(raw)
    if parsed is None:
        raise InvalidRequest("id must be a positive integer")
    return parsed


def query_int(
    req: func.HttpRequest,
    name: str,
    *,
    default: int,
    minimum: int,
    maximum: Optional[int] = None,
) -> int:
    raw = str(req.params.get(name) or "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        raise InvalidRequest(f"{name} must be an integer") from None
    if parsed > MAX_ID:
        raise InvalidRequest(f"{name} is out of range")
    if parsed < minimum or (maximum is not None and parsed > maximum):
        if maximum is None:
            raise InvalidRequest(f"{name} must be at least {minimum}")
        raise InvalidRequest(f"{name} must be between {minimum} and {maximum}")
    return parsed


def run_pipeline(
    req: func.HttpRequest,
    *,
    handlers: Mapping[str, Handler],
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
    authenticate: bool = True,
    operation: str = "",
) -> func.HttpResponse:
    """
    Run one request through CORS, authentication, method dispatch and error
    translation.

    ``handlers`` maps an upper-case HTTP method to a callable taking the
    RequestContext. OPTIONS is answered here with 204 and never authenticated.
    ApiError subclasses become ``{"error": message}`` with their status; any
    other exception is logged and reported as a generic 500.
    """
    settings = settings or get_settings()
    methods = [method.upper() for method in handlers]
    cors = build_cors_headers(req, methods, settings=settings)
    method = (req.method or "").upper()
    if method == "OPTIONS":
        return no_content(cors)

    operation = operation or req.url
    try:
        claim = None
        if authenticate:
            claim = authenticate_header(req.headers.get("Authorization"), settings.session_secret)

        handler = handlers.get(method)
        if handler is None:
            raise MethodNotSupported()

        ctx = RequestContext(
            req=req,
            claim=claim,
            provider=resolve_provider(provider),
            settings=settings,
            cors=cors,
        )
        return handler(ctx)
    except ApiError as exc:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", method, operation, exc.message)
        elif exc.status_code in (401, 403):
            logger.warning("%s %s rejected (%s): %s", method, operation, exc.status_code, exc.message)
        else:
            logger.info("%s %s rejected (%s): %s", method, operation, exc.status_code, exc.message)
        return error_response(exc.message, status_code=exc.status_code, cors=cors)
    except Exception:  # pylint: disable=broad-except
        logger.exception("%s %s failed unexpectedly", method, operation)
        return error_response(GENERIC_ERROR_MESSAGE, status_code=500, cors=cors)
