from __future__ import annotations

DEFAULT_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_RESPONSES_URL = "https://api.openai.com/v1/responses"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_PORT = 8080

SIMPLE_MAX_TOKENS = 500
DETAILED_MAX_TOKENS = 2000

MAX_HEADINGS = 5
MAX_PARAGRAPHS = 3
MAX_PLAIN_CONTENT_CHARS = 2000

# Encoded (base64) size, checked before any request is built.
MAX_IMAGE_DATA_CHARS = 20 * 1024 * 1024

DEFAULT_IMAGE_PREFIX = "data:image/jpeg;base64,"
IMAGE_DATA_URI_PREFIXES = (
    "data:image/jpeg;base64,",
    "data:image/png;base64,",
    "data:image/webp;base64,",
)
IMAGE_DETAIL = "low"
WEB_SEARCH_TOOL = "web_search_preview"

ENV_API_KEY = "LLM_API_KEY"
ENV_CHAT_URL = "LLM_API_URL"
ENV_RESPONSES_URL = "WEB_SEARCH_API_URL"
ENV_MODEL = "LLM_MODEL"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_PORT = "PORT"
