"""
LLM Client Module
负责调用 OpenAI 兼容接口 (OpenAI / NVIDIA NIM / Local Ollama)，返回结构化 JSON。
"""

import json
import logging
import re
import threading
import time

import openai
from openai import OpenAI

import config
from lumina.analyzers.json_extract import extract_json
from lumina.errors import ConfigurationError, ExternalServiceError, SchemaViolation

logger = logging.getLogger(__name__)

MAX_RATE_LIMIT_RETRIES = 2
RATE_LIMIT_BACKOFF_SECONDS = 10.0

_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.InternalServerError,
)


def _message_to_text(message: object) -> str:
    """Flatten chat message content (str or typed content parts) to text."""
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                text = item.get("text") or item.get("content")
                if isinstance(text, str):
                    parts.append(text)
            else:
                text = getattr(item, "text", None)
                if isinstance(text, str):
                    parts.append(text)
        return "\n".join(p for p in parts if p).strip()

    # Function-call style replies carry the payload in tool_calls
    for call in getattr(message, "tool_calls", None) or []:
        arguments = getattr(getattr(call, "function", None), "arguments", None)
        if isinstance(arguments, str) and arguments.strip():
            return arguments
    return ""


class LLMClient:
    """Thin OpenAI-compatible client with a global request throttle."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        provider: str | None = None,
        timeout: float | None = None,
        max_tokens: int | None = None,
        min_request_interval: float | None = None,
        client: OpenAI | None = None,
    ):
        self.api_key = config.LLM_API_KEY if api_key is None else api_key
        self.base_url = base_url or config.LLM_BASE_URL
        self.model = model or config.LLM_MODEL
        self.provider = provider or config.API_PROVIDER
        self.timeout = timeout or config.LLM_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or config.LLM_MAX_TOKENS
        self.min_request_interval = (
            config.LLM_MIN_REQUEST_INTERVAL_SECONDS
            if min_request_interval is None
            else min_request_interval
        )
        self._client = client
        self._rate_lock = threading.Lock()
        self._last_request_ts = 0.0

    @property
    def is_local(self) -> bool:
        return self.provider == "Local_Ollama"

    def _get_client(self) -> OpenAI:
        """Lazy-init API client (延迟初始化 API 客户端)."""
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    f"{self.provider} API key is not configured. "
                    "Set LLM_API_KEY (or NVIDIA_API_KEY / USE_LOCAL_OLLAMA) and restart the worker."
                )
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url, max_retries=0)
        return self._client

    def _throttle(self) -> None:
        with self._rate_lock:
            wait_s = self.min_request_interval - (time.monotonic() - self._last_request_ts)
            if wait_s > 0:
                time.sleep(wait_s)
            self._last_request_ts = time.monotonic()

    def _call(self, request):
        """Run one request with 429 backoff; map SDK errors onto the pipeline taxonomy."""
        for attempt in range(MAX_RATE_LIMIT_RETRIES + 1):
            self._throttle()
            try:
                return request()
            except openai.RateLimitError as exc:
                if attempt < MAX_RATE_LIMIT_RETRIES:
                    backoff = RATE_LIMIT_BACKOFF_SECONDS * (2 ** attempt)
                    logger.warning(
                        "[LLM] %s 429 rate limit, backoff %.1fs then retry (%s/%s)",
                        self.provider,
                        backoff,
                        attempt + 1,
                        MAX_RATE_LIMIT_RETRIES,
                    )
                    time.sleep(backoff)
                    continue
                raise ExternalServiceError(f"{self.provider} rate limit: {exc}") from exc
            except openai.AuthenticationError as exc:
                raise ConfigurationError(f"{self.provider} rejected the API key: {exc}") from exc
            except _TRANSIENT_ERRORS as exc:
                raise ExternalServiceError(f"{self.provider} request failed: {exc}") from exc
            except openai.BadRequestError as exc:
                raise SchemaViolation(f"{self.provider} rejected the request: {exc}") from exc
            except openai.APIError as exc:
                # 403/404/422 and anything else the SDK raises
                status = getattr(exc, "status_code", None)
                raise ExternalServiceError(
                    f"{self.provider} request failed (HTTP {status or 'n/a'}): {exc}"
                ) from exc
        raise ExternalServiceError(f"{self.provider} request failed after retries")

    def _first_choice(self, response):
        choices = getattr(response, "choices", None) or []
        if not choices:
            raise SchemaViolation(f"{self.provider} returned no choices")
        return choices[0]

    def generate_json(
        self,
        system_instruction: str,
        prompt: str,
        schema: dict,
        schema_name: str,
        search_domains: list[str] | None = None,
    ) -> dict:
        """
        Ask for a structured object conforming to ``schema``.

        With ``search_domains`` the request enables web search restricted to
        those domains; the JSON is then recovered from the free-text answer.
        Raises SchemaViolation when no conforming object can be recovered.
        """
        client = self._get_client()
        expected_keys = tuple(schema.get("properties", {}))

        if search_domains:
            schema_hint = json.dumps(schema, ensure_ascii=False)
            response = self._call(
                lambda: client.responses.create(
                    model=self.model,
                    instructions=system_instruction,
                    input=f"{prompt}\n\nReply with one JSON object matching this schema:\n{schema_hint}",
                    tools=[{"type": "web_search", "filters": {"allowed_domains": search_domains}}],
                    max_output_tokens=self.max_tokens,
                    timeout=self.timeout,
                )
            )
            if getattr(response, "status", None) == "incomplete":
                raise SchemaViolation(f"{self.provider} response for '{schema_name}' was cut off")
            raw = (getattr(response, "output_text", "") or "").strip()
        else:
            request_kwargs = {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0.0 if self.is_local else 0.4,
                "max_tokens": self.max_tokens,
                "timeout": self.timeout,
            }
            if self.is_local:
                request_kwargs["extra_body"] = {"format": schema}
            else:
                request_kwargs["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {"name": schema_name, "schema": schema, "strict": True},
                }
            response = self._call(lambda: client.chat.completions.create(**request_kwargs))
            choice = self._first_choice(response)
            if getattr(choice, "finish_reason", None) == "length":
                raise SchemaViolation(
                    f"{self.provider} response for '{schema_name}' hit the token limit and was cut off"
                )
            raw = _message_to_text(choice.message).strip()

        if not raw:
            raise SchemaViolation(f"Empty response from {self.provider} for schema '{schema_name}'")

        preview = raw[:300]
        suffix = "..." if len(raw) > 300 else ""
        logger.debug("[LLM] Raw response (%s chars): %s%s", len(raw), preview, suffix)

        data = extract_json(raw, expected_keys=expected_keys)
        if data is None:
            raise SchemaViolation(
                f"Could not extract a JSON object for schema '{schema_name}' from model output"
            )
        return data

    def ask_yes_no(self, system_instruction: str, prompt: str) -> bool | None:
        """
        Single YES/NO question. Returns None when the answer is neither.
        Transport errors propagate as pipeline errors.
        """
        client = self._get_client()
        response = self._call(
            lambda: client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.0,
                max_tokens=5,
                timeout=self.timeout,
            )
        )
        answer = _message_to_text(self._first_choice(response).message).strip().upper()
        if re.search(r"\bNO\b", answer):
            return False
        if re.search(r"\bYES\b", answer):
            return True
        return None
