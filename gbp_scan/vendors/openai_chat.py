"""Minimal chat-completions client used by the AI recommendation strategy."""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

OPENAI_URL = "https://api.openai.com/v1/chat/completions"
REQUEST_TIMEOUT = 30


class OpenAIError(RuntimeError):
    """Raised when the chat-completions endpoint fails or returns an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _build_session() -> requests.Session:
    session = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("POST",),
        raise_on_status=False,
    )
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session


_SESSION = _build_session()


def chat_completion(
    messages: List[Dict[str, str]],
    *,
    api_key: str,
    model: str,
    temperature: float = 0.7,
    max_tokens: int = 1200,
) -> Dict[str, Any]:
    headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
    body = {
        "model": model,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    try:
        response = _SESSION.post(OPENAI_URL, headers=headers, json=body, timeout=REQUEST_TIMEOUT)
    except requests.RequestException as exc:
        raise OpenAIError(f"chat completion request failed: {exc}") from exc

    if response.status_code != 200:
        logger.error("OpenAI API error %s: %s", response.status_code, response.text[:500])
        raise OpenAIError(f"OpenAI API error: {response.status_code}", status_code=response.status_code)
    return response.json()


def extract_content(resp_json: Dict[str, Any]) -> str:
    choices = resp_json.get("choices") or []
    if not choices:
        raise OpenAIError("chat completion returned no choices")
    content = (choices[0].get("message") or {}).get("content")
    if not content:
        raise OpenAIError("chat completion returned empty content")
    return content
