from __future__ import annotations
import hashlib
import json
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response

from deliverybi.core.config import settings

# ---------------------------------------------------------------------------
# ETag
# ---------------------------------------------------------------------------

def make_etag_from_bytes(body: bytes) -> str:
    return f'"{hashlib.md5(body).hexdigest()}"'


def dumps_deterministic(obj: Any) -> bytes:
    return json.dumps(
        jsonable_encoder(obj),
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    ).encode("utf-8")


# ---------------------------------------------------------------------------
# Cabeceras (Cache-Control, ETag, Vary)
# ---------------------------------------------------------------------------

def _cache_control_value(max_age: Optional[int], swr: Optional[int]) -> str:
    max_age = settings.CACHE_MAX_AGE if max_age is None else max_age
    swr = settings.CACHE_SWR if swr is None else swr
    return f"private, max-age={int(max_age)}, stale-while-revalidate={int(swr)}"


def apply_cache_headers(
    response: Response,
    etag: str,
    *,
    max_age: Optional[int] = None,
    swr: Optional[int] = None,
    vary_authorization: bool = True,
) -> None:
    response.headers["ETag"] = etag
    response.headers["Cache-Control"] = _cache_control_value(max_age, swr)
    if vary_authorization:
        # el alcance de empresas depende del token
        response.headers["Vary"] = "Authorization"


def _etag_matches(header_value: Optional[str], etag: str) -> bool:
    if not header_value:
        return False
    candidates = [v.strip() for v in header_value.split(",")]
    return "*" in candidates or etag in candidates or etag.strip('"') in candidates


# ---------------------------------------------------------------------------
# JSON con ETag (+ 304 si coincide If-None-Match)
# ---------------------------------------------------------------------------

def etag_json(
    request: Request,
    payload: Any,
    *,
    status_code: int = 200,
    max_age: Optional[int] = None,
    swr: Optional[int] = None,
    vary_authorization: bool = True,
) -> Response:
    """Serializes ``payload`` once, hashes it and answers 304 on a matching If-None-Match."""
    body = dumps_deterministic(payload)
    etag = make_etag_from_bytes(body)

    if _etag_matches(request.headers.get("If-None-Match"), etag):
        resp = Response(status_code=304)
        apply_cache_headers(resp, etag, max_age=max_age, swr=swr, vary_authorization=vary_authorization)
        return resp

    resp = Response(content=body, status_code=status_code, media_type="application/json")
    apply_cache_headers(resp, etag, max_age=max_age, swr=swr, vary_authorization=vary_authorization)
    return resp


__all__ = ["apply_cache_headers", "dumps_deterministic", "etag_json", "make_etag_from_bytes"]
