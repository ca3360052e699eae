from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Set
from urllib.parse import urlsplit

import azure.functions as func

from shared.config import AppSettings, get_settings

DEFAULT_ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
]


def _is_local_origin(origin: str | None) -> bool:
    if not origin:
        return False
    host = (urlsplit(origin).hostname or "").lower()
    return host in {"localhost", "127.0.0.1"}


def _origin_matches(origin: str, allowed: str) -> bool:
    """
    Compare a browser Origin against one configured entry.
    Entries may be full origins, bare hosts (any scheme) or *.domain wildcards.
    """
    allowed = allowed.strip().rstrip("/").lower()
    origin = origin.strip().rstrip("/").lower()
    if not allowed or not origin:
        return False
    if allowed == "*":
        return True

    parsed_origin = urlsplit(origin)
    origin_host = parsed_origin.hostname or ""
    if "://" not in allowed:
        # Host-only entry: scheme and port are not enforced.
        return _host_matches(origin_host, allowed)

    parsed_allowed = urlsplit(allowed)
    if parsed_allowed.scheme != parsed_origin.scheme:
        return False
    if parsed_allowed.port is not None and parsed_allowed.port != parsed_origin.port:
        return False
    return _host_matches(origin_host, parsed_allowed.hostname or "")


def _host_matches(host: str, pattern: str) -> bool:
    if pattern.startswith("*."):
        suffix = pattern[1:]
        return host.endswith(suffix) and len(host) > len(suffix)
    return host == pattern


def _allow_headers(req: func.HttpRequest) -> str:
    """
    Build the Access-Control-Allow-Headers value.
    Mirrors any extra headers requested by the browser preflight.
    """
    requested = req.headers.get("Access-Control-Request-Headers", "")
    merged: Dict[str, str] = {}

    for name in DEFAULT_ALLOWED_HEADERS:
        merged[name.lower()] = name

    for name in requested.split(","):
        cleaned = name.strip()
        if cleaned:
            merged.setdefault(cleaned.lower(), cleaned)

    return ", ".join(merged.values())


def _normalize_methods(allowed_methods: Iterable[str]) -> List[str]:
    seen: Set[str] = set()
    methods_list: List[str] = []
    for method in allowed_methods:
        normalized = method.strip().upper()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        methods_list.append(normalized)
    if "OPTIONS" not in seen:
        methods_list.append("OPTIONS")
    return methods_list


def origin_allowed(origin: Optional[str], allowed_origins: Sequence[str]) -> bool:
    if "*" in allowed_origins or not allowed_origins:
        return True
    if not origin:
        return False
    if _is_local_origin(origin):
        return True
    return any(_origin_matches(origin, entry) for entry in allowed_origins)


def build_cors_headers(
    req: func.HttpRequest,
    allowed_methods: Iterable[str],
    settings: Optional[AppSettings] = None,
) -> Dict[str, str]:
    """Return CORS headers for the request origin if allowed."""
    settings = settings or get_settings()
    origin = req.headers.get("Origin")
    allowed_origins = settings.cors_origins

    headers: Dict[str, str] = {"Vary": "Origin"}
    if not origin_allowed(origin, allowed_origins):
        return headers

    allow_all = "*" in allowed_origins
    if settings.cors_allow_credentials and origin:
        # Credentialed requests may not use the wildcard.
        allow_origin = origin
    elif allow_all:
        allow_origin = "*"
    else:
        allow_origin = origin or allowed_origins[0]

    headers.update(
        {
            "Access-Control-Allow-Origin": allow_origin,
            "Access-Control-Allow-Methods": ", ".join(_normalize_methods(allowed_methods)),
            "Access-Control-Allow-Headers": _allow_headers(req),
        }
    )
    if settings.cors_allow_credentials:
        headers["Access-Control-Allow-Credentials"] = "true"
    return headers
