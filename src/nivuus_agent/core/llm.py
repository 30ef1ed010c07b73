import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import ModelAuthError, ModelError, ModelRateLimitError, ModelTransportError
from .prompts import SUMMARY_SYSTEM_PROMPT, SUMMARY_USER_TEMPLATE
from ..utils.logging import Icons, pretty_log

logger = logging.getLogger("NivuusAgent")

RETRYABLE_ERRORS = (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError, httpx.ConnectError, httpx.ConnectTimeout)
MAX_ATTEMPTS = 3


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            return str(body["error"].get("message") or body["error"])
        return str(body)
    except ValueError:
        return response.text[:500]


def classify_status_error(e: httpx.HTTPStatusError) -> ModelError:
    status = e.response.status_code
    detail = _error_detail(e.response)
    if status in (401, 403):
        return ModelAuthError(f"Authentication failed (HTTP {status}): {detail}", status)
    if status == 429:
        return ModelRateLimitError(f"Rate limit reached (HTTP 429): {detail}", status)
    return ModelTransportError(f"API error (HTTP {status}): {detail}", status)


class LLMClient:
    def __init__(self, base_url: str, api_key: str, model: str, summary_model: str,
                 timeout: float = 600.0, transport: Optional[httpx.AsyncBaseTransport] = None,
                 retry_base_delay: float = 1.0):
        self.model = model
        self.summary_model = summary_model
        self.retry_base_delay = retry_base_delay
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        self.http_client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            limits=limits,
            headers={"Authorization": f"Bearer {api_key}"},
            follow_redirects=True,
            transport=transport,
        )

    async def close(self):
        await self.http_client.aclose()

    async def chat_completion(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sends a chat completion request, retrying connection-level failures.
        Raises ModelAuthError, ModelRateLimitError or ModelTransportError.
        """
        for attempt in range(MAX_ATTEMPTS):
            try:
                resp = await self.http_client.post("/chat/completions", json=payload)
                resp.raise_for_status()
                return resp.json()
            except RETRYABLE_ERRORS as e:
                if attempt < MAX_ATTEMPTS - 1:
                    wait_time = self.retry_base_delay * (2 ** attempt)
                    pretty_log("Upstream Retry", f"Connection issue: {type(e).__name__}. Retrying in {wait_time:g}s...", icon=Icons.RETRY)
                    await asyncio.sleep(wait_time)
                else:
                    pretty_log("Upstream Failed", f"Failed after {MAX_ATTEMPTS} attempts: {e}", level="ERROR", icon=Icons.FAIL)
                    raise ModelTransportError(f"Network error talking to the model: {type(e).__name__}: {e}") from e
            except httpx.HTTPStatusError as e:
                raise classify_status_error(e) from e
            except httpx.HTTPError as e:
                raise ModelTransportError(f"Network error talking to the model: {type(e).__name__}: {e}") from e
            except ValueError as e:
                raise ModelTransportError(f"Malformed response from the model: {e}") from e
        raise ModelTransportError("Model request was not attempted")

    async def complete(self, messages: List[Dict[str, Any]], tools: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Returns the first choice's message."""
        payload = {"model": self.model, "messages": messages, "tools": tools, "tool_choice": "auto"}
        data = await self.chat_completion(payload)
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices or not isinstance(choices[0], dict) or not isinstance(choices[0].get("message"), dict):
            raise ModelTransportError("No response message received from the model")
        return choices[0]["message"]

    async def summarize(self, formatted_messages: str) -> str:
        payload = {
            "model": self.summary_model,
            "messages": [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": SUMMARY_USER_TEMPLATE.format(messages=formatted_messages)},
            ],
            "max_tokens": 500,
        }
        data = await self.chat_completion(payload)
        return (data.get("choices") or [{}])[0].get("message", {}).get("content") or ""
