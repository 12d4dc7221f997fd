import pytest
import requests

from gbp_scan.vendors import openai_chat


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class DummySession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def test_chat_completion_posts_model_and_messages(monkeypatch):
    session = DummySession(DummyResponse(payload={"choices": [{"message": {"content": "{}"}}]}))
    monkeypatch.setattr(openai_chat, "_SESSION", session)

    resp = openai_chat.chat_completion([{"role": "user", "content": "hi"}], api_key="sk-test", model="gpt-4o-mini")

    assert openai_chat.extract_content(resp) == "{}"
    call = session.calls[0]
    assert call["url"] == openai_chat.OPENAI_URL
    assert call["headers"]["Authorization"] == "Bearer sk-test"
    assert call["json"]["model"] == "gpt-4o-mini"
    assert call["json"]["max_tokens"] == 1200


def test_chat_completion_error_status(monkeypatch):
    monkeypatch.setattr(openai_chat, "_SESSION", DummySession(DummyResponse(status_code=401, text="bad key")))

    with pytest.raises(openai_chat.OpenAIError) as excinfo:
        openai_chat.chat_completion([], api_key="bad", model="gpt-4o-mini")
    assert excinfo.value.status_code == 401


def test_chat_completion_network_error(monkeypatch):
    monkeypatch.setattr(openai_chat, "_SESSION", DummySession(requests.Timeout("slow")))

    with pytest.raises(openai_chat.OpenAIError):
        openai_chat.chat_completion([], api_key="k", model="gpt-4o-mini")


@pytest.mark.parametrize("payload", [{}, {"choices": []}, {"choices": [{"message": {"content": ""}}]}])
def test_extract_content_rejects_empty(payload):
    with pytest.raises(openai_chat.OpenAIError):
        openai_chat.extract_content(payload)
