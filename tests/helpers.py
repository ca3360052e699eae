import json
import os
from typing import Any, Dict, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTH_SESSION_SECRET", "unit-test-secret")

import azure.functions as func  # noqa: E402

from crm_shared import hash_password, issue_session_token  # noqa: E402
from shared.config import AppSettings  # noqa: E402
from shared.db import Company, SessionProvider, User  # noqa: E402

TEST_SECRET = "unit-test-secret"


def make_settings(**overrides) -> AppSettings:
    values = {
        "database_url": "sqlite://",
        "session_secret": TEST_SECRET,
        "session_ttl_seconds": 3600,
        "cors_origins": ("*",),
        "cors_allow_credentials": False,
        "max_file_size": 1024,
    }
    values.update(overrides)
    return AppSettings(**values)


def make_provider() -> SessionProvider:
    provider = SessionProvider("sqlite://")
    provider.create_all()
    return provider


def seed_company(provider: SessionProvider, name: str) -> int:
    with provider.transaction() as db:
        company = Company(name=name)
        db.add(company)
        db.flush()
        return company.id


def seed_user(
    provider: SessionProvider,
    company_id: int,
    email: str,
    *,
    role: str = "member",
    password: str = "correct-horse",
    is_active: bool = True,
) -> int:
    with provider.transaction() as db:
        user = User(
            name=email.split("@")[0],
            email=email,
            password_hash=hash_password(password),
            company_id=company_id,
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.flush()
        return user.id


def token_for(user_id: int, company_id: int, role: str = "member", **kwargs) -> str:
    return issue_session_token(
        user_id=user_id,
        company_id=company_id,
        role=role,
        secret=kwargs.pop("secret", TEST_SECRET),
        ttl_seconds=kwargs.pop("ttl_seconds", 3600),
        **kwargs,
    )


def make_request(
    method: str,
    route: str,
    *,
    body: Any = None,
    raw_body: Optional[bytes] = None,
    params: Optional[Dict[str, str]] = None,
    route_params: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
    token: Optional[str] = None,
) -> func.HttpRequest:
    all_headers = dict(headers or {})
    if token:
        all_headers["Authorization"] = f"Bearer {token}"
    if raw_body is None:
        raw_body = json.dumps(body).encode("utf-8") if body is not None else b""
        if body is not None:
            all_headers.setdefault("Content-Type", "application/json")
    return func.HttpRequest(
        method=method,
        url=f"http://localhost/api/{route}",
        headers=all_headers,
        params=params or {},
        route_params=route_params or {},
        body=raw_body,
    )


def json_body(resp: func.HttpResponse) -> Any:
    return json.loads(resp.get_body().decode("utf-8"))
