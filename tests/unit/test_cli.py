"""Tests for the command-line client."""
import requests

import generate_template


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


TEMPLATE = {
    "id": "tpl-1",
    "title": "Reading List",
    "theme": {"name": "minimal"},
    "blocks": [{"id": "b1", "type": "heading", "level": 1, "content": "Reading List"}],
}


def test_build_payload():
    args = generate_template.parse_args(
        ["A reading list with ratings", "--theme", "dark", "--use-mcp", "--server", "notion-mcp", "--audience", "students"]
    )
    assert generate_template.build_payload(args) == {
        "description": "A reading list with ratings",
        "theme": "dark",
        "complexity": "intermediate",
        "useMCP": True,
        "selectedMCPServers": ["notion-mcp"],
        "includeImages": False,
        "targetAudience": "students",
    }


def test_generate_and_save(monkeypatch, capsys):
    posted = []

    def fake_get(url, timeout):
        return FakeResponse(200, {"status": "healthy"})

    def fake_post(url, json, timeout):
        posted.append(url)
        if url.endswith("/generate"):
            return FakeResponse(200, {"success": True, "template": TEMPLATE})
        return FakeResponse(201, {"success": True, "data": TEMPLATE})

    monkeypatch.setattr(requests, "get", fake_get)
    monkeypatch.setattr(requests, "post", fake_post)

    exit_code = generate_template.generate_template(
        generate_template.parse_args(["A reading list with ratings", "--save"])
    )

    assert exit_code == 0
    assert posted == ["http://localhost:8000/generate", "http://localhost:8000/templates"]
    assert "Title: Reading List" in capsys.readouterr().out


def test_validation_error_is_printed(monkeypatch, capsys):
    error = {"success": False, "error": {"code": "VALIDATION_ERROR", "message": "bad", "details": {"errors": ["description: too short"]}}}
    monkeypatch.setattr(requests, "get", lambda url, timeout: FakeResponse(200, {}))
    monkeypatch.setattr(requests, "post", lambda url, json, timeout: FakeResponse(400, error))

    assert generate_template.generate_template(generate_template.parse_args(["short text"])) == 1
    assert "  - description: too short" in capsys.readouterr().out


def test_server_down(monkeypatch, capsys):
    def refuse(url, timeout):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", refuse)
    assert generate_template.generate_template(generate_template.parse_args(["A reading list"])) == 1
    assert "Could not connect" in capsys.readouterr().out
