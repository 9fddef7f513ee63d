from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AskRequest(BaseModel):
    """One client question about a web page."""

    model_config = ConfigDict(populate_by_name=True)

    question: str
    url: str = ""
    title: str = ""
    page_content: str = Field(default="", alias="pageContent")
    screenshot: str = ""
    use_web_search: bool = Field(default=False, alias="useWebSearch")
    is_simple: bool = Field(default=False, alias="isSimple")

    @field_validator("url", "title", "page_content", "screenshot", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def has_screenshot(self) -> bool:
        return bool(self.screenshot.strip())


class TokenUsage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt_tokens: int = Field(default=0, ge=0, alias="promptTokens")
    completion_tokens: int = Field(default=0, ge=0, alias="completionTokens")
    total_tokens: int = Field(default=0, ge=0, alias="totalTokens")


class AskResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answer: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


# Upstream shapes, decoded strictly before any fallback lookup.


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatChoice(BaseModel):
    message: ChatMessage


class ChatCompletion(BaseModel):
    choices: List[ChatChoice] = Field(min_length=1)


class OutputPart(BaseModel):
    type: str
    text: Optional[str] = None


class OutputItem(BaseModel):
    type: str
    content: List[OutputPart] = Field(default_factory=list)


class ResponsesResult(BaseModel):
    output: List[OutputItem]


class ErrorDetail(BaseModel):
    message: str = ""
    type: Optional[str] = None
    code: Optional[Any] = None


class UpstreamErrorBody(BaseModel):
    error: ErrorDetail
