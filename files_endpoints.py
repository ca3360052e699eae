import base64
import binascii
import logging
import re
from typing import Optional

import azure.functions as func

from function_app import app
from repository.crm_records import file_to_dict
from repository.tenant_repo import delete_record, get_record, tenant_query
from schemas.fields import require_fields
from shared.config import AppSettings
from shared.db import SessionProvider, StoredFile
from shared.errors import InvalidRequest, NotFound, PayloadTooLarge
from shared.http import RequestContext, run_pipeline

logger = logging.getLogger(__name__)

FILENAME_RE = re.compile(r"^[a-zA-Z0-9._-]{1,255}$")
ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
FILE_NOT_FOUND = "File not found"


def _get_limit(req: func.HttpRequest, default: int = DEFAULT_PAGE_SIZE) -> int:
    raw = req.params.get("limit")
    try:
        parsed = int(raw) if raw else default
    except ValueError:
        parsed = default
    return max(1, min(MAX_PAGE_SIZE, parsed))


def _get_offset(req: func.HttpRequest) -> int:
    raw = req.params.get("offset")
    try:
        parsed = int(raw) if raw else 0
    except ValueError:
        parsed = 0
    return max(0, parsed)


def decode_file_data(encoded: str, max_size: int) -> bytes:
    """Decode a base64 upload, rejecting malformed input and oversized content."""
    text = str(encoded or "").strip()
    if text.startswith("data:") and "," in text:
        # Browsers send data URLs from FileReader.readAsDataURL.
        text = text.split(",", 1)[1]
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("File data is not valid base64") from None
    if len(raw) > max_size:
        raise PayloadTooLarge("File size exceeds limit")
    return raw


def _upload(ctx: RequestContext) -> func.HttpResponse:
    body = ctx.body()
    require_fields(body, ("fileName", "fileType", "fileData"))
    file_name = body["fileName"]
    file_type = body["fileType"]
    if not isinstance(file_name, str) or not FILENAME_RE.match(file_name):
        raise InvalidRequest("Invalid file name")
    if not isinstance(file_type, str) or file_type not in ALLOWED_MIME_TYPES:
        raise InvalidRequest("Invalid file type")
    if not isinstance(body["fileData"], str):
        raise InvalidRequest("File data is not valid base64")
    content = decode_file_data(body["fileData"], ctx.settings.max_file_size)

    with ctx.provider.transaction() as db:
        stored = StoredFile(
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            file_name=file_name,
            file_type=file_type,
            file_size=len(content),
            file_data=content,
        )
        db.add(stored)
        db.flush()
        payload = file_to_dict(stored)
    logger.info("Stored file %s (%s bytes) for company %s", payload["id"], payload["fileSize"], ctx.company_id)
    return ctx.json(payload, status_code=201)


def _list_or_get(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id()
    with ctx.provider.session() as db:
        if record_id is not None:
            stored = get_record(db, StoredFile, ctx.company_id, record_id)
            if stored is None:
                raise NotFound(FILE_NOT_FOUND)
            return ctx.json(file_to_dict(stored))

        limit = _get_limit(ctx.req)
        offset = _get_offset(ctx.req)
        files = (
            tenant_query(db, StoredFile, ctx.company_id)
            .order_by(StoredFile.created_at.desc(), StoredFile.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return ctx.json({"files": [file_to_dict(stored) for stored in files], "limit": limit, "offset": offset})


def _delete(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id(required=True)
    with ctx.provider.transaction() as db:
        deleted = delete_record(db, StoredFile, ctx.company_id, record_id)
    if not deleted:
        raise NotFound(FILE_NOT_FOUND)
    return ctx.no_content()


def _download(ctx: RequestContext) -> func.HttpResponse:
    record_id = ctx.record_id(required=True)
    with ctx.provider.session() as db:
        stored = get_record(db, StoredFile, ctx.company_id, record_id)
        if stored is None:
            raise NotFound(FILE_NOT_FOUND)
        headers = dict(ctx.cors)
        headers["Content-Disposition"] = f'attachment; filename="{stored.file_name}"'
        return func.HttpResponse(
            body=bytes(stored.file_data),
            status_code=200,
            mimetype=stored.file_type,
            headers=headers,
        )


def handle_files(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _list_or_get, "POST": _upload, "DELETE": _delete},
        provider=provider,
        settings=settings,
        operation="files",
    )


def handle_file_download(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _download},
        provider=provider,
        settings=settings,
        operation="files/download",
    )


@app.function_name(name="Files")
@app.route(route="files/{id?}", methods=["GET", "POST", "DELETE", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def files(req: func.HttpRequest) -> func.HttpResponse:
    return handle_files(req)


@app.function_name(name="FileDownload")
@app.route(route="files/{id}/download", methods=["GET", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def file_download(req: func.HttpRequest) -> func.HttpResponse:
    return handle_file_download(req)
