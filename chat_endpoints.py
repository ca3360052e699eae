import logging
from typing import Optional

import azure.functions as func

from function_app import app
from repository.chat_repo import (
    add_message,
    chat_to_dict,
    create_chat,
    get_tenant_chat,
    is_participant,
    list_messages,
    list_user_chats,
    message_to_dict,
    missing_tenant_users,
    participants_by_chat,
)
from schemas.fields import ID_LIST, FieldSpec, Schema, parse_positive_int
from shared.config import AppSettings
from shared.db import SessionProvider
from shared.errors import Forbidden, InvalidRequest, NotFound
from shared.http import RequestContext, query_int, run_pipeline

logger = logging.getLogger(__name__)

CREATE_CHAT = Schema(fields=(FieldSpec("participantIds", ID_LIST, required=True, column="participant_ids"),))
SEND_MESSAGE = Schema(fields=(FieldSpec("content", required=True, min_length=1, max_length=5000),))
MAX_MESSAGES = 200


def _parse_chat_id(raw) -> int:
    chat_id = parse_positive_int(raw)
    if chat_id is None:
        raise InvalidRequest("chatId must be a positive integer")
    return chat_id


def _require_membership(db, ctx: RequestContext, chat_id: int) -> None:
    # A chat in another tenant is reported as missing, not forbidden.
    if get_tenant_chat(db, ctx.company_id, chat_id) is None:
        raise NotFound("Chat not found")
    if not is_participant(db, chat_id, ctx.user_id):
        raise Forbidden()


def _list_chats(ctx: RequestContext) -> func.HttpResponse:
    with ctx.provider.session() as db:
        chats = list_user_chats(db, ctx.company_id, ctx.user_id)
        participants = participants_by_chat(db, [chat.id for chat in chats])
        return ctx.json({"chats": [chat_to_dict(chat, participants.get(chat.id, [])) for chat in chats]})


def _create_chat(ctx: RequestContext) -> func.HttpResponse:
    values = CREATE_CHAT.clean(ctx.body())
    participant_ids = list(dict.fromkeys([ctx.user_id, *values["participant_ids"]]))
    with ctx.provider.transaction() as db:
        missing = missing_tenant_users(db, ctx.company_id, participant_ids)
        if missing:
            raise InvalidRequest(f"Participant IDs not found: {','.join(str(user_id) for user_id in missing)}")
        chat = create_chat(db, company_id=ctx.company_id, created_by=ctx.user_id, participant_ids=participant_ids)
        payload = chat_to_dict(chat, participant_ids)
    logger.info("Chat %s created with %s participants", payload["id"], len(participant_ids))
    return ctx.json(payload, status_code=201)


def _get_messages(ctx: RequestContext) -> func.HttpResponse:
    raw_chat_id = str(ctx.req.params.get("chatId") or "").strip()
    if not raw_chat_id:
        raise InvalidRequest("chatId is required")
    chat_id = _parse_chat_id(raw_chat_id)
    after_id = None
    raw_after = str(ctx.req.params.get("afterId") or "").strip()
    if raw_after:
        after_id = query_int(ctx.req, "afterId", default=0, minimum=0)
    with ctx.provider.session() as db:
        _require_membership(db, ctx, chat_id)
        messages = list_messages(db, ctx.company_id, chat_id, after_id=after_id, limit=MAX_MESSAGES)
        return ctx.json({"messages": [message_to_dict(message) for message in messages]})


def _send_message(ctx: RequestContext) -> func.HttpResponse:
    body = ctx.body()
    if body.get("chatId") in (None, ""):
        raise InvalidRequest("chatId is required")
    chat_id = _parse_chat_id(body["chatId"])
    values = SEND_MESSAGE.clean(body)
    with ctx.provider.transaction() as db:
        _require_membership(db, ctx, chat_id)
        message = add_message(
            db,
            company_id=ctx.company_id,
            chat_id=chat_id,
            sender_id=ctx.user_id,
            content=values["content"],
        )
        payload = message_to_dict(message)
    return ctx.json(payload, status_code=201)


def handle_chats(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _list_chats, "POST": _create_chat},
        provider=provider,
        settings=settings,
        operation="chat/chats",
    )


def handle_messages(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"GET": _get_messages, "POST": _send_message},
        provider=provider,
        settings=settings,
        operation="chat/messages",
    )


@app.function_name(name="ChatChats")
@app.route(route="chat/chats", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def chat_chats(req: func.HttpRequest) -> func.HttpResponse:
    return handle_chats(req)


@app.function_name(name="ChatMessages")
@app.route(route="chat/messages", methods=["GET", "POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def chat_messages(req: func.HttpRequest) -> func.HttpResponse:
    return handle_messages(req)
