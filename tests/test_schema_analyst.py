import requests

from dbexport.core import config
from dbexport.schemas.database import TableSchema
from dbexport.services import schema_analyst

TABLES = [
    TableSchema(name="users", row_count=2, columns=["id", "name"]),
    TableSchema(name="orders", row_count=0, columns=["id", "total"]),
]


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self._payload


def test_describe_schema():
    assert schema_analyst.describe_schema(TABLES) == (
        "Table: users (2 rows). Columns: id, name\n"
        "Table: orders (0 rows). Columns: id, total"
    )


def test_prompt_mentions_file_and_language(monkeypatch):
    monkeypatch.setattr(config, "SUMMARY_LANGUAGE", "Chinese")
    prompt = schema_analyst.build_prompt("shop.db", TABLES)
    assert '"shop.db"' in prompt
    assert "Table: users (2 rows)" in prompt
    assert prompt.endswith("Respond in Chinese.")


def test_missing_key_returns_placeholder(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", None)
    assert schema_analyst.analyze_schema("shop.db", TABLES) == schema_analyst.ANALYSIS_UNAVAILABLE


def test_successful_summary(monkeypatch):
    sent = {}

    def fake_post(url, params=None, json=None, timeout=None):
        sent.update(url=url, params=params, json=json, timeout=timeout)
        return FakeResponse({"candidates": [{"content": {"parts": [{"text": " A small shop. "}]}}]})

    monkeypatch.setattr(config, "GEMINI_API_KEY", "secret")
    monkeypatch.setattr(config, "GEMINI_MODEL", "test-model")
    monkeypatch.setattr(schema_analyst.requests, "post", fake_post)

    assert schema_analyst.analyze_schema("shop.db", TABLES) == "A small shop."
    assert sent["url"].endswith("/models/test-model:generateContent")
    assert sent["params"] == {"key": "secret"}
    assert sent["timeout"] == config.SUMMARY_TIMEOUT


def test_empty_answer(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "secret")
    monkeypatch.setattr(
        schema_analyst.requests, "post",
        lambda *a, **kw: FakeResponse({"candidates": [{"content": {"parts": []}}]}),
    )
    assert schema_analyst.analyze_schema("shop.db", TABLES) == schema_analyst.NO_ANALYSIS


def test_http_failure_returns_placeholder(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "secret")
    monkeypatch.setattr(schema_analyst.requests, "post", lambda *a, **kw: FakeResponse({}, status_code=500))
    assert schema_analyst.analyze_schema("shop.db", TABLES) == schema_analyst.ANALYSIS_UNAVAILABLE


def test_network_error_returns_placeholder(monkeypatch):
    def boom(*args, **kwargs):
        raise requests.ConnectionError("offline")

    monkeypatch.setattr(config, "GEMINI_API_KEY", "secret")
    monkeypatch.setattr(schema_analyst.requests, "post", boom)
    assert schema_analyst.analyze_schema("shop.db", TABLES) == schema_analyst.ANALYSIS_UNAVAILABLE


def test_malformed_payload_returns_placeholder(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "secret")
    monkeypatch.setattr(schema_analyst.requests, "post", lambda *a, **kw: FakeResponse({"unexpected": True}))
    assert schema_analyst.analyze_schema("shop.db", TABLES) == schema_analyst.ANALYSIS_UNAVAILABLE
