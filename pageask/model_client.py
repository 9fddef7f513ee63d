from __future__ import annotations

import json
import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

import requests
from pydantic import ValidationError as SchemaValidationError

from .constants import (
    DEFAULT_CHAT_URL,
    DEFAULT_IMAGE_PREFIX,
    DEFAULT_MODEL,
    DEFAULT_RESPONSES_URL,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    DETAILED_MAX_TOKENS,
    IMAGE_DATA_URI_PREFIXES,
    IMAGE_DETAIL,
    MAX_IMAGE_DATA_CHARS,
    SIMPLE_MAX_TOKENS,
    WEB_SEARCH_TOOL,
)
from .prompts import build_prompt, build_system_prompt, build_web_search_input
from .schemas import (
    AskRequest,
    AskResponse,
    ChatCompletion,
    ResponsesResult,
    TokenUsage,
    UpstreamErrorBody,
)

logger = logging.getLogger(__name__)


class AssistantError(RuntimeError):
    """Base class for every failure that ends an ask request."""

    http_status = 500


class ValidationError(AssistantError):
    """Raised when the inbound request is missing required fields."""

    http_status = 400


class PayloadTooLarge(AssistantError):
    """Raised when the screenshot exceeds the encoded size ceiling."""

    http_status = 413


class SerializationError(AssistantError):
    """Raised when the upstream payload cannot be encoded as JSON."""

    http_status = 500


class UpstreamError(AssistantError):
    """Raised for non-2xx upstream replies, carrying the provider's detail when present."""

    http_status = 502

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        error_type: Optional[str] = None,
        error_code: Optional[str] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.error_code = error_code
        self.body = body


class ExtractionError(AssistantError):
    """Raised when a 2xx upstream body holds no usable answer."""

    http_status = 503


class TransportError(AssistantError):
    """Raised for connection, DNS and timeout failures."""

    http_status = 504


class MissingCredential(AssistantError):
    """Raised when no API key is configured."""

    http_status = 511


class RequestMode(Enum):
    PLAIN_TEXT = "plain_text"
    VISION = "vision"
    WEB_SEARCH = "web_search"


@dataclass(frozen=True)
class ClientConfig:
    api_key: Optional[str]
    chat_url: str = DEFAULT_CHAT_URL
    responses_url: str = DEFAULT_RESPONSES_URL
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def endpoint_for(self, mode: RequestMode) -> str:
        if mode is RequestMode.WEB_SEARCH:
            return self.responses_url
        return self.chat_url


@dataclass(frozen=True)
class UpstreamReply:
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def validate_request(request: AskRequest) -> None:
    if not request.question.strip():
        raise ValidationError("question must be a non-empty string")


def classify_request(use_web_search: bool, screenshot_present: bool) -> RequestMode:
    if use_web_search:
        return RequestMode.WEB_SEARCH
    if screenshot_present:
        return RequestMode.VISION
    return RequestMode.PLAIN_TEXT


def normalize_image(raw: str) -> str:
    if len(raw) > MAX_IMAGE_DATA_CHARS:
        raise PayloadTooLarge(
            f"Screenshot is {format_bytes(len(raw))} of encoded data; "
            f"the limit is {format_bytes(MAX_IMAGE_DATA_CHARS)}"
        )
    candidate = raw.strip()
    if candidate.startswith(IMAGE_DATA_URI_PREFIXES):
        return candidate
    if candidate.startswith("data:"):
        _, sep, encoded = candidate.partition(",")
        if not sep:
            encoded = candidate[len("data:"):]
        return DEFAULT_IMAGE_PREFIX + encoded
    return DEFAULT_IMAGE_PREFIX + candidate


def build_request_payload(
    request: AskRequest,
    mode: RequestMode,
    *,
    model: str,
    temperature: float,
) -> Dict[str, Any]:
    if mode is RequestMode.WEB_SEARCH:
        return {
            "model": model,
            "input": build_web_search_input(request),
            "tools": [{"type": WEB_SEARCH_TOOL}],
        }

    prompt = build_prompt(request)
    user_content: Any
    if mode is RequestMode.VISION:
        user_content = [
            {"type": "text", "text": prompt},
            {
                "type": "image_url",
                "image_url": {
                    "url": normalize_image(request.screenshot),
                    "detail": IMAGE_DETAIL,
                },
            },
        ]
    else:
        user_content = prompt
    return {
        "model": model,
        "temperature": temperature,
        "max_tokens": SIMPLE_MAX_TOKENS if request.is_simple else DETAILED_MAX_TOKENS,
        "messages": [
            {"role": "system", "content": build_system_prompt(request.is_simple)},
            {"role": "user", "content": user_content},
        ],
    }


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Could not encode upstream request: {exc}") from exc


def post_request(
    *,
    url: str,
    api_key: str,
    body: bytes,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> UpstreamReply:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    try:
        response = requests.post(url, data=body, headers=headers, timeout=timeout)
    except requests.Timeout as exc:
        raise TransportError(f"Request to {url} timed out after {timeout:g}s") from exc
    except requests.RequestException as exc:
        raise TransportError(f"Request failed for {url}: {exc}") from exc
    return UpstreamReply(status_code=response.status_code, body=response.content)


def raise_for_upstream_error(reply: UpstreamReply) -> None:
    if reply.ok:
        return
    try:
        parsed: Optional[UpstreamErrorBody] = UpstreamErrorBody.model_validate_json(reply.body)
    except SchemaValidationError:
        parsed = None

    if parsed is not None and parsed.error.message:
        detail = parsed.error
        logger.error(
            "Upstream error %s: %s (type=%s, code=%s)",
            reply.status_code,
            detail.message,
            detail.type,
            detail.code,
        )
        raise UpstreamError(
            detail.message,
            status_code=reply.status_code,
            error_type=detail.type,
            error_code=None if detail.code is None else str(detail.code),
            body=reply.text,
        )

    snippet = reply.text[:500].replace("\n", " ")
    logger.error("Upstream returned HTTP %s: %s", reply.status_code, snippet)
    raise UpstreamError(
        f"HTTP {reply.status_code} from upstream: {snippet}",
        status_code=reply.status_code,
        body=reply.text,
    )


def decode_body(reply: UpstreamReply) -> Dict[str, Any]:
    try:
        data = json.loads(reply.body)
    except ValueError as exc:
        snippet = reply.text[:500].replace("\n", " ")
        raise ExtractionError(f"Upstream returned a non-JSON body: {snippet}") from exc
    if not isinstance(data, dict):
        raise ExtractionError(f"Expected a JSON object from upstream, received: {type(data).__name__}")
    return data


CHAT_CONTENT_PATH = ("choices", 0, "message", "content")


def _lookup_path(data: Any, path: Sequence[Union[str, int]]) -> Any:
    current = data
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
    return current


def _content_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        text_parts: List[str] = []
        for item in content:
            if isinstance(item, str):
                text_parts.append(item)
                continue
            if not isinstance(item, dict):
                continue
            for key in ("text", "content", "output_text"):
                value = item.get(key)
                if isinstance(value, str):
                    text_parts.append(value)
                    break
        return "\n".join(text_parts)
    return ""


def extract_chat_answer(data: Dict[str, Any]) -> str:
    try:
        completion = ChatCompletion.model_validate(data)
    except SchemaValidationError as exc:
        logger.debug(
            "Strict chat completion decode failed (%d error(s)); using key lookup",
            exc.error_count(),
        )
        return _content_text(_lookup_path(data, CHAT_CONTENT_PATH))
    return completion.choices[0].message.content


def _first_output_text(output: Any) -> str:
    if not isinstance(output, list):
        return ""
    for item in output:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        content = item.get("content")
        if not isinstance(content, list):
            continue
        for part in content:
            if not isinstance(part, dict) or part.get("type") != "output_text":
                continue
            text = part.get("text")
            if isinstance(text, str) and text:
                return text
    return ""


def extract_responses_answer(data: Dict[str, Any]) -> str:
    try:
        result = ResponsesResult.model_validate(data)
    except SchemaValidationError as exc:
        logger.debug(
            "Strict responses decode failed (%d error(s)); scanning output items",
            exc.error_count(),
        )
        return _first_output_text(data.get("output"))
    for item in result.output:
        if item.type != "message":
            continue
        for part in item.content:
            if part.type == "output_text" and part.text:
                return part.text
    return ""


def extract_answer(data: Dict[str, Any], mode: RequestMode) -> str:
    if mode is RequestMode.WEB_SEARCH:
        answer = extract_responses_answer(data)
    else:
        answer = extract_chat_answer(data)
    if not answer.strip():
        logger.debug("Unusable upstream response: %s", json.dumps(data, ensure_ascii=False)[:2000])
        raise ExtractionError("Could not extract an answer from the upstream response")
    return answer.strip()


def _coerce_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return max(0, int(round(value)))
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None
        try:
            return max(0, int(stripped))
        except ValueError:
            try:
                parsed = float(stripped)
            except ValueError:
                return None
            if math.isnan(parsed) or math.isinf(parsed):
                return None
            return max(0, int(round(parsed)))
    return None


def _pick_int(data: Dict[str, Any], keys: List[str]) -> int:
    for key in keys:
        if key in data:
            value = _coerce_int(data.get(key))
            if value is not None:
                return value
    return 0


def extract_response_usage(data: Dict[str, Any]) -> TokenUsage:
    usage = data.get("usage") if isinstance(data.get("usage"), dict) else {}
    return TokenUsage(
        prompt_tokens=_pick_int(usage, ["prompt_tokens", "input_tokens"]),
        completion_tokens=_pick_int(usage, ["completion_tokens", "output_tokens"]),
        total_tokens=_pick_int(usage, ["total_tokens"]),
    )


def ask_model(request: AskRequest, config: ClientConfig) -> AskResponse:
    validate_request(request)
    if not config.api_key:
        raise MissingCredential("LLM API key is not configured (set LLM_API_KEY)")

    mode = classify_request(request.use_web_search, request.has_screenshot)
    logger.info(
        "Ask: mode=%s question=%r url=%s screenshot=%s page_content=%s simple=%s",
        mode.value,
        request.question[:80],
        request.url,
        format_bytes(len(request.screenshot)) if request.screenshot else "none",
        format_bytes(len(request.page_content)) if request.page_content else "none",
        request.is_simple,
    )

    payload = build_request_payload(
        request,
        mode,
        model=config.model,
        temperature=config.temperature,
    )
    body = serialize_payload(payload)
    url = config.endpoint_for(mode)
    logger.debug("POST %s (%s)", url, format_bytes(len(body)))

    started = time.monotonic()
    reply = post_request(url=url, api_key=config.api_key, body=body, timeout=config.timeout)
    elapsed = time.monotonic() - started
    logger.debug("Upstream replied HTTP %s in %.2fs: %s", reply.status_code, elapsed, reply.text[:2000])

    raise_for_upstream_error(reply)
    data = decode_body(reply)
    answer = extract_answer(data, mode)
    usage = extract_response_usage(data)
    logger.info(
        "Answered in %.2fs: prompt_tokens=%d completion_tokens=%d total_tokens=%d",
        elapsed,
        usage.prompt_tokens,
        usage.completion_tokens,
        usage.total_tokens,
    )
    return AskResponse(answer=answer, usage=usage)
