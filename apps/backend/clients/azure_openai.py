"""Azure OpenAI chat completions client."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from apps.backend.utils.api_errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    content: str | None
    model: str | None = None


def _normalize_err(err: str) -> str:
    if not err:
        return "unknown_error"
    low = err.lower()
    if "timeout" in low or "timed out" in low:
        return "timeout"
    if "certificate verify failed" in low:
        return "ssl_verify_failed"
    return err[:200]


class AzureOpenAIClient:
    def __init__(
        self,
        endpoint: str,
        deployment: str,
        api_key: str,
        api_version: str = "2024-10-21",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60,
    ) -> None:
        self.endpoint = (endpoint or "").rstrip("/")
        self.deployment = deployment
        self._api_key = api_key
        self.api_version = api_version
        self._transport = transport
        self._timeout = timeout

    def _url(self) -> str:
        return f"{self.endpoint}/openai/deployments/{self.deployment}/chat/completions"

    async def generate_text(
        self,
        messages: list[dict],
        *,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        json_mode: bool = True,
    ) -> GenerationResult:
        if not self.endpoint:
            raise UpstreamError("Generation service is not configured", detail="missing_endpoint")
        body: dict = {
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as c:
                r = await c.post(
                    self._url(),
                    params={"api-version": self.api_version},
                    headers={"api-key": self._api_key, "Content-Type": "application/json"},
                    json=body,
                )
        except httpx.RequestError as e:
            err = _normalize_err(str(e))
            logger.warning("azure_openai_request_error deployment=%s error=%s", self.deployment, err)
            raise UpstreamError("Generation service request failed", detail=err)
        try:
            payload = r.json() if r.content else {}
        except ValueError:
            payload = {}
        if r.status_code >= 400:
            err = payload.get("error") if isinstance(payload, dict) else None
            message = err.get("message") if isinstance(err, dict) else err
            logger.warning("azure_openai_request_failed deployment=%s status=%s", self.deployment, r.status_code)
            raise UpstreamError("Generation service request failed", detail=str(message or f"http_{r.status_code}")[:200])
        choices = payload.get("choices") if isinstance(payload, dict) else None
        content = None
        if choices:
            content = ((choices[0] or {}).get("message") or {}).get("content")
        model = payload.get("model") if isinstance(payload, dict) else None
        logger.info("azure_openai_request_ok deployment=%s model=%s", self.deployment, model)
        return GenerationResult(content=content, model=model)
