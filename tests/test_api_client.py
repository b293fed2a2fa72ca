import json

import httpx
import pytest

from backend.app.services.api_client import ApiClientError, CandidateApiClient, with_retries


def _client(handler, max_retries=3):
    sleeps: list[float] = []
    client = CandidateApiClient(
        "http://ats.test",
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
    )
    return client, sleeps


def test_get_retries_server_errors_with_backoff():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) < 3:
            return httpx.Response(503, json={"success": False, "error": "Service temporarily unavailable"})
        return httpx.Response(200, json={"success": True, "data": {"id": 5}})

    client, sleeps = _client(handler)
    with client:
        body = client.get_candidate(5)

    assert body["data"]["id"] == 5
    assert calls == ["/api/candidates/5"] * 3
    assert sleeps == [0.5, 1.0]


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(1)
        return httpx.Response(404, json={"success": False, "error": "Candidate not found"})

    client, sleeps = _client(handler)
    with pytest.raises(ApiClientError) as exc:
        client.get_candidate(99)

    assert exc.value.status_code == 404
    assert str(exc.value) == "Candidate not found"
    assert len(calls) == 1
    assert sleeps == []


def test_network_errors_exhaust_retries():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client, sleeps = _client(handler, max_retries=2)
    with pytest.raises(ApiClientError) as exc:
        client.list_candidates()

    assert exc.value.status_code is None
    assert sleeps == [0.5, 1.0]


def test_persistent_server_error_surfaces_last_response():
    client, sleeps = _client(lambda request: httpx.Response(500, json={"success": False, "error": "Internal server error"}), max_retries=1)
    with pytest.raises(ApiClientError) as exc:
        client.download_cv(1)
    assert exc.value.status_code == 500
    assert sleeps == [0.5]


def test_create_is_sent_once_even_on_server_error():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"success": False, "error": "Something went wrong"})

    client, sleeps = _client(handler)
    with pytest.raises(ApiClientError) as exc:
        client.create_candidate(
            {"firstName": "Ada", "lastName": "Lovelace", "email": "ada@x.com"},
            cv=("resume.pdf", b"%PDF", "application/pdf"),
        )

    assert exc.value.status_code == 500
    assert len(calls) == 1
    assert sleeps == []


def test_create_encodes_nested_lists_as_json():
    seen = {}

    def handler(request):
        seen["body"] = request.content
        seen["content_type"] = request.headers["content-type"]
        return httpx.Response(201, json={"success": True, "data": {"id": 1}})

    client, _ = _client(handler)
    client.create_candidate(
        {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "email": "ada@x.com",
            "phone": None,
            "education": [{"degree": "Mathematics", "institution": "Home"}],
        }
    )

    assert seen["content_type"].startswith("application/x-www-form-urlencoded")
    form = httpx.QueryParams(seen["body"].decode())
    assert json.loads(form["education"]) == [{"degree": "Mathematics", "institution": "Home"}]
    assert "phone" not in form


def test_list_candidates_passes_query_params():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"success": True, "data": [], "meta": {"total": 0}})

    client, _ = _client(handler)
    client.list_candidates(page=2, limit=5, search="acme")
    assert seen["params"] == {"page": "2", "limit": "5", "search": "acme"}


def test_with_retries_caps_delay():
    sleeps = []
    attempts = []

    @with_retries(5, base_delay=1.0, max_delay=3.0, sleep=sleeps.append)
    def flaky():
        attempts.append(1)
        raise httpx.ReadTimeout("slow")

    with pytest.raises(httpx.ReadTimeout):
        flaky()
    assert len(attempts) == 6
    assert sleeps == [1.0, 2.0, 3.0, 3.0, 3.0]
