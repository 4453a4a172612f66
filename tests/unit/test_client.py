import json

import httpx

from silksong_site.client import NewsletterClient, is_retryable_status

CREATED = {
    "success": True,
    "code": "created",
    "message": "Almost there!",
    "data": {"requires_confirmation": True},
}


def make_client(handler, sleeps, **kwargs):
    return NewsletterClient(
        "https://silksong.test/",
        transport=httpx.MockTransport(handler),
        sleep=sleeps.append,
        **kwargs,
    )


def test_is_retryable_status():
    assert is_retryable_status(500)
    assert is_retryable_status(503)
    assert is_retryable_status(429)
    assert not is_retryable_status(400)
    assert not is_retryable_status(409)


def test_success_first_try():
    seen = []
    sleeps = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json=CREATED)

    with make_client(handler, sleeps) as client:
        outcome = client.subscribe("hornet@example.com", source="widget", tags=["pc"])

    assert outcome.success
    assert outcome.status_code == 201
    assert outcome.code == "created"
    assert outcome.attempts == 1
    assert sleeps == []
    assert str(seen[0].url) == "https://silksong.test/api/subscribe"
    assert json.loads(seen[0].content) == {"email": "hornet@example.com", "source": "widget", "tags": ["pc"]}


def test_retries_server_errors_with_backoff():
    responses = [httpx.Response(503), httpx.Response(502), httpx.Response(201, json=CREATED)]
    sleeps = []

    client = make_client(lambda request: responses.pop(0), sleeps, backoff_initial=1)
    outcome = client.subscribe("hornet@example.com")

    assert outcome.success
    assert outcome.attempts == 3
    assert sleeps == [1, 2]


def test_honours_retry_after():
    responses = [httpx.Response(429, headers={"Retry-After": "7"}), httpx.Response(201, json=CREATED)]
    sleeps = []

    outcome = make_client(lambda request: responses.pop(0), sleeps).subscribe("hornet@example.com")

    assert outcome.success
    assert sleeps == [7]


def test_wait_is_capped():
    responses = [httpx.Response(429, headers={"Retry-After": "600"}), httpx.Response(201, json=CREATED)]
    sleeps = []

    make_client(lambda request: responses.pop(0), sleeps, max_wait=60).subscribe("hornet@example.com")

    assert sleeps == [60]


def test_client_errors_are_final():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request)
        return httpx.Response(409, json={"success": False, "error": "Email already subscribed", "code": "already_subscribed"})

    outcome = make_client(handler, sleeps).subscribe("hornet@example.com")

    assert not outcome.success
    assert outcome.status_code == 409
    assert outcome.code == "already_subscribed"
    assert outcome.message == "Email already subscribed"
    assert len(calls) == 1
    assert sleeps == []


def test_gives_up_after_retries():
    calls = []
    sleeps = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500, json={"success": False, "error": "boom", "code": "server_internal"})

    outcome = make_client(handler, sleeps, retries=2).subscribe("hornet@example.com")

    assert not outcome.success
    assert outcome.status_code == 500
    assert outcome.code == "server_internal"
    assert outcome.attempts == 3
    assert len(calls) == 3
    assert len(sleeps) == 2


def test_network_failure():
    sleeps = []

    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    outcome = make_client(handler, sleeps, retries=1).subscribe("hornet@example.com")

    assert not outcome.success
    assert outcome.status_code == 0
    assert outcome.code == "network_error"
    assert outcome.attempts == 2
