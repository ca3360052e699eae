import logging
from typing import Optional

import azure.functions as func
from sqlalchemy import func as sa_func
from sqlalchemy.exc import IntegrityError

from crm_shared import hash_password, issue_session_token, verify_password
from function_app import app
from repository.crm_records import user_to_dict
from schemas.auth_schema import LOGIN, SIGNUP
from shared.config import AppSettings
from shared.db import Company, SessionProvider, User
from shared.errors import Conflict, Unauthenticated
from shared.http import RequestContext, run_pipeline

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _issue_for(ctx: RequestContext, user: User) -> str:
    return issue_session_token(
        user_id=user.id,
        company_id=user.company_id,
        role=user.role,
        secret=ctx.settings.session_secret,
        ttl_seconds=ctx.settings.session_ttl_seconds,
    )


def _signup(ctx: RequestContext) -> func.HttpResponse:
    values = SIGNUP.clean(ctx.body())
    email = values["email"]
    company_name = values["company_name"]

    with ctx.provider.transaction() as db:
        if db.query(User.id).filter(sa_func.lower(User.email) == email).first():
            raise Conflict("Email already in use")

        company = (
            db.query(Company)
            .filter(sa_func.lower(Company.name) == company_name.lower(), Company.deleted_at.is_(None))
            .order_by(Company.id.asc())
            .first()
        )
        if company is None:
            company = Company(name=company_name)
            db.add(company)
            db.flush()

        user = User(
            name=values["name"],
            email=email,
            password_hash=hash_password(values["password"]),
            company_id=company.id,
            role="admin",
            is_active=True,
        )
        db.add(user)
        try:
            db.flush()
        except IntegrityError:
            raise Conflict("Email already in use") from None
        if company.created_by is None:
            company.created_by = user.id
        token = _issue_for(ctx, user)
        payload = {"token": token, "user": user_to_dict(user)}

    logger.info("Signed up user %s into company %s", payload["user"]["id"], payload["user"]["companyId"])
    return ctx.json(payload, status_code=201)


def _login(ctx: RequestContext) -> func.HttpResponse:
    values = LOGIN.clean(ctx.body())
    with ctx.provider.session() as db:
        user = (
            db.query(User)
            .filter(sa_func.lower(User.email) == values["email"], User.is_active.is_(True))
            .order_by(User.id.asc())
            .first()
        )
        # Unknown user and wrong password are indistinguishable to the caller.
        if user is None or not verify_password(values["password"], user.password_hash):
            raise Unauthenticated(INVALID_CREDENTIALS_MESSAGE)
        token = _issue_for(ctx, user)
        payload = {"token": token, "user": user_to_dict(user)}
    return ctx.json(payload)


def handle_signup(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"POST": _signup},
        provider=provider,
        settings=settings,
        authenticate=False,
        operation="auth/signup",
    )


def handle_login(
    req: func.HttpRequest,
    provider: Optional[SessionProvider] = None,
    settings: Optional[AppSettings] = None,
) -> func.HttpResponse:
    return run_pipeline(
        req,
        handlers={"POST": _login},
        provider=provider,
        settings=settings,
        authenticate=False,
        operation="auth/login",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.function_name(name="AuthSignup")
@app.route(route="auth/signup", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_signup(req: func.HttpRequest) -> func.HttpResponse:
    return handle_signup(req)


@app.function_name(name="AuthLogin")
@app.route(route="auth/login", methods=["POST", "OPTIONS"], auth_level=func.AuthLevel.ANONYMOUS)
def auth_login(req: func.HttpRequest) -> func.HttpResponse:
    return handle_login(req)
