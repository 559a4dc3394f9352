from __future__ import annotations
import asyncio
from typing import Any, Dict, Optional
import httpx
from deliverybi.core.config import settings
from deliverybi.core.logging import alerts_logger


class SlackError(RuntimeError):
    def __init__(self, status_code: int, message: str, details: Optional[dict] = None):
        super().__init__(f"[Slack {status_code}] {message}")
        self.status_code = status_code
        self.message = message
        self.details = details or {}


async def _request_with_retries(
    method: str,
    url: str,
    *,
    json_body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 10.0,
    retries: int = 2,
    backoff_base: float = 0.25,
) -> httpx.Response:
    last_exc: Optional[Exception] = None
    resp: Optional[httpx.Response] = None
    attempt = 0
    async with httpx.AsyncClient(timeout=timeout) as client:
        while attempt <= retries:
            last_exc = None
            try:
                resp = await client.request(
                    method=method.upper(),
                    url=url,
                    json=json_body,
                    headers=headers,
                )
                # 2xx ok
                if 200 <= resp.status_code < 300:
                    return resp
                # 4xx: reintentar no sirve
                if 400 <= resp.status_code < 500:
                    return resp
                # 5xx: cae al reintento
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_exc = exc
            attempt += 1
            if attempt > retries:
                break
            await asyncio.sleep(backoff_base * (2 ** (attempt - 1)))
        if last_exc:
            raise last_exc
        assert resp is not None
        return resp


async def send_slack_message(
    text: str,
    *,
    webhook_url: Optional[str] = None,
    timeout: float = 10.0,
    retries: int = 2,
) -> bool:
    """
    Posts ``text`` to the incoming webhook.

    Returns False without calling out when no webhook is configured. Raises
    ``SlackError`` when Slack answers with a non-2xx status.
    """
    url = webhook_url or settings.SLACK_WEBHOOK_URL
    if not url:
        alerts_logger.error("SLACK_WEBHOOK_URL not configured")
        return False

    resp = await _request_with_retries(
        "POST",
        url,
        json_body={"text": text},
        headers={"Content-Type": "application/json"},
        timeout=timeout,
        retries=retries,
    )

    if not (200 <= resp.status_code < 300):
        raise SlackError(resp.status_code, "Error al enviar el webhook de Slack", {"raw": resp.text[:500]})

    alerts_logger.info("Slack message sent", chars=len(text))
    return True
