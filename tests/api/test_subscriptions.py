from datetime import timedelta

from silksong_site.adapters.sqlalchemy_adapter import SqlAlchemySubscriptionAdapter
from silksong_site.errors import DatabaseError
from silksong_site.models.subscription import STATUS_ACTIVE, STATUS_PENDING, STATUS_UNSUBSCRIBED, utcnow


def subscribe(client, email, ip="203.0.113.10", **extra):
    return client.post(
        "/api/subscribe",
        json={"email": email, **extra},
        headers={"X-Forwarded-For": ip},
    )


def test_subscribe_creates_pending_subscription(client, adapter, sent_emails):
    response = subscribe(client, "Hornet@Example.com", source="footer", tags=["release"])

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["code"] == "created"
    assert body["data"]["subscription"]["email"] == "hornet@example.com"
    assert body["data"]["subscription"]["status"] == STATUS_PENDING
    assert body["data"]["requires_confirmation"] is True
    assert body["data"]["is_new_subscription"] is True
    assert body["data"]["email_sent"] is True
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "9"

    stored = adapter.get_by_email("hornet@example.com")
    assert stored.source == "footer"
    assert stored.tags == ["release"]
    assert len(stored.verification_token) == 32
    assert len(stored.unsubscribe_token) == 64

    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == ["hornet@example.com"]
    assert stored.verification_token in sent_emails[0]["html"]


def test_subscribe_without_double_opt_in_is_active(client, sent_emails, monkeypatch):
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")

    response = subscribe(client, "lace@example.com")

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["subscription"]["status"] == STATUS_ACTIVE
    assert data["requires_confirmation"] is False
    assert data["count"] == 1
    assert sent_emails[0]["subject"] == "Welcome to the Silksong newsletter!"


def test_subscribe_rejects_invalid_email(client):
    response = subscribe(client, "not-an-email")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "validation_email"
    assert response.headers["X-Error-Code"] == "validation_email"


def test_subscribe_uses_strict_address_syntax(client):
    for email in ("hornet..x@example.com", "x@bar..com", ".hornet@example.com"):
        response = subscribe(client, email)

        assert response.status_code == 400
        assert response.json()["code"] == "validation_email"
        assert response.json()["error"] == "Please enter a valid email address"


def test_address_accepted_at_signup_can_unsubscribe_by_email(client, adapter, monkeypatch):
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")
    assert subscribe(client, "Hornet.Silk+news@Example.com").status_code == 201

    response = client.post(
        "/api/newsletter/unsubscribe",
        json={"email": "hornet.silk+news@example.com", "confirm": True},
    )

    assert response.status_code == 200
    assert adapter.get_by_email("hornet.silk+news@example.com").status == STATUS_UNSUBSCRIBED


def test_subscribe_suggests_domain_typo_fix(client):
    response = subscribe(client, "hornet@gmial.com")

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_email"
    assert body["details"]["suggestions"] == ["hornet@gmail.com"]


def test_subscribe_rejects_disposable_domain(client):
    response = subscribe(client, "spam@mailinator.com")

    assert response.status_code == 400
    assert response.json()["error"] == "Temporary email addresses are not allowed"


def test_subscribe_rejects_unknown_source(client):
    response = subscribe(client, "hornet@example.com", source="carrier-pigeon")

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "validation_schema"
    assert body["error"].startswith("Source must be one of")


def test_duplicate_pending_subscription_conflicts(client):
    assert subscribe(client, "sherma@example.com").status_code == 201

    response = subscribe(client, "sherma@example.com", ip="198.51.100.2")

    assert response.status_code == 409
    assert response.json()["code"] == "already_pending"


def test_duplicate_active_subscription_conflicts(client, monkeypatch):
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")
    assert subscribe(client, "sherma@example.com").status_code == 201

    response = subscribe(client, "sherma@example.com", ip="198.51.100.2")

    assert response.status_code == 409
    assert response.json()["code"] == "already_subscribed"


def test_same_email_twice_from_same_client_is_a_duplicate_request(client):
    assert subscribe(client, "shakra@example.com").status_code == 201

    response = subscribe(client, "shakra@example.com")

    assert response.status_code == 409
    assert response.json()["code"] == "rate_limit_duplicate"


def test_retry_after_server_error_is_not_a_duplicate(client, adapter, monkeypatch):
    original_create = SqlAlchemySubscriptionAdapter.create
    calls = []

    def flaky_create(self, data):
        calls.append(data["email"])
        if len(calls) == 1:
            raise DatabaseError(message="Failed to create subscription")
        return original_create(self, data)

    monkeypatch.setattr(SqlAlchemySubscriptionAdapter, "create", flaky_create)

    first = subscribe(client, "shakra@example.com")
    assert first.status_code == 500
    assert first.json()["code"] == "database_error"

    retry = subscribe(client, "shakra@example.com")
    assert retry.status_code == 201
    assert retry.json()["code"] == "created"
    assert adapter.get_by_email("shakra@example.com") is not None


def test_subscribe_rate_limit_returns_retry_after(client):
    for i in range(10):
        assert subscribe(client, f"bug{i}@example.com").status_code == 201

    response = subscribe(client, "bug10@example.com")

    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "rate_limit_exceeded"
    assert body["retry_after"] > 0
    assert int(response.headers["Retry-After"]) > 0
    assert response.headers["X-RateLimit-Remaining"] == "0"

    # Another client is not affected
    assert subscribe(client, "bug10@example.com", ip="198.51.100.7").status_code == 201


def test_expired_pending_link_is_reissued(client, adapter, sent_emails):
    subscribe(client, "garmond@example.com")
    stored = adapter.get_by_email("garmond@example.com")
    adapter.update(stored.id, {"subscribed_at": utcnow() - timedelta(hours=72)})

    response = subscribe(client, "garmond@example.com", ip="198.51.100.3")

    assert response.status_code == 200
    assert response.json()["code"] == "confirmation_resent"
    refreshed = adapter.get_by_email("garmond@example.com")
    assert refreshed.status == STATUS_PENDING
    assert refreshed.verification_token != stored.verification_token
    assert len(sent_emails) == 2


def test_confirm_activates_subscription(client, adapter, sent_emails):
    subscribe(client, "hornet@example.com")
    token = adapter.get_by_email("hornet@example.com").verification_token

    response = client.get("/api/subscribe/confirm", params={"token": token})

    assert response.status_code == 200
    assert response.json()["code"] == "confirmed"
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    stored = adapter.get_by_email("hornet@example.com")
    assert stored.status == STATUS_ACTIVE
    assert stored.verified is True
    assert stored.confirmed_at is not None
    assert sent_emails[-1]["subject"] == "Welcome to the Silksong newsletter!"


def test_confirm_twice_is_idempotent(client, adapter, sent_emails):
    subscribe(client, "hornet@example.com")
    token = adapter.get_by_email("hornet@example.com").verification_token
    client.get("/api/subscribe/confirm", params={"token": token})

    response = client.get("/api/subscribe/confirm", params={"token": token})

    assert response.status_code == 200
    assert response.json()["code"] == "already_confirmed"
    # confirmation + one welcome, no second welcome
    assert len(sent_emails) == 2


def test_confirm_errors(client, adapter):
    assert client.get("/api/subscribe/confirm").json()["code"] == "token_required"

    response = client.get("/api/subscribe/confirm", params={"token": "xyz"})
    assert response.status_code == 400
    assert response.json()["code"] == "token_invalid_format"

    response = client.get("/api/subscribe/confirm", params={"token": "a" * 32})
    assert response.status_code == 404
    assert response.json()["code"] == "token_not_found"


def test_confirm_expired_token_is_gone(client, adapter):
    subscribe(client, "hornet@example.com")
    stored = adapter.get_by_email("hornet@example.com")
    adapter.update(stored.id, {"subscribed_at": utcnow() - timedelta(hours=49)})

    response = client.get("/api/subscribe/confirm", params={"token": stored.verification_token})

    assert response.status_code == 410
    assert response.json()["code"] == "token_expired"
    assert adapter.get_by_email("hornet@example.com").status == STATUS_PENDING


def test_unsubscribe_by_token(client, adapter, db_session, sent_emails):
    subscribe(client, "hornet@example.com")
    stored = adapter.get_by_email("hornet@example.com")

    response = client.post(
        "/api/newsletter/unsubscribe",
        json={"token": stored.unsubscribe_token, "reason": "too_frequent", "feedback": "too many emails"},
        headers={"User-Agent": "pytest"},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["email"] == "hornet@example.com"
    assert data["reason"] == "too_frequent"

    stored = adapter.get_by_email("hornet@example.com")
    assert stored.status == STATUS_UNSUBSCRIBED
    assert stored.metadata["unsubscribe_method"] == "token"
    assert stored.metadata["unsubscribe_feedback"] == "too many emails"
    assert adapter.count_unsubscriptions() == 1
    assert sent_emails[-1]["subject"] == "You have been unsubscribed"


def test_reusing_unsubscribe_token_from_same_client_is_refused(client, adapter):
    subscribe(client, "hornet@example.com")
    token = adapter.get_by_email("hornet@example.com").unsubscribe_token
    client.post("/api/newsletter/unsubscribe", json={"token": token})

    response = client.post("/api/newsletter/unsubscribe", json={"token": token})

    assert response.status_code == 429
    assert response.json()["code"] == "security_token_reuse"


def test_old_confirm_link_does_not_undo_unsubscribe(client, adapter, sent_emails):
    subscribe(client, "hornet@example.com")
    stored = adapter.get_by_email("hornet@example.com")
    confirm_token = stored.verification_token
    client.get("/api/subscribe/confirm", params={"token": confirm_token})
    client.post("/api/newsletter/unsubscribe", json={"token": stored.unsubscribe_token})

    response = client.get("/api/subscribe/confirm", params={"token": confirm_token})

    assert response.status_code == 404
    assert response.json()["code"] == "token_not_found"
    stored = adapter.get_by_email("hornet@example.com")
    assert stored.status == STATUS_UNSUBSCRIBED
    assert stored.verification_token is None


def test_confirm_link_only_confirms_pending_rows(client, adapter):
    subscribe(client, "hornet@example.com")
    stored = adapter.get_by_email("hornet@example.com")
    # Opted out with the verification token still set
    adapter.update(stored.id, {"status": STATUS_UNSUBSCRIBED, "unsubscribed_at": utcnow()})

    response = client.get("/api/subscribe/confirm", params={"token": stored.verification_token})

    assert response.status_code == 404
    assert adapter.get_by_email("hornet@example.com").status == STATUS_UNSUBSCRIBED


def test_unsubscribe_token_errors(client):
    response = client.post("/api/newsletter/unsubscribe", json={"token": "short"})
    assert response.status_code == 400
    assert response.json()["code"] == "validation_token"

    response = client.post("/api/newsletter/unsubscribe", json={"token": "b" * 64})
    assert response.status_code == 404
    assert response.json()["code"] == "validation_token"


def test_unsubscribe_by_email_requires_confirm_flag(client, adapter, monkeypatch):
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")
    subscribe(client, "hornet@example.com")

    response = client.post("/api/newsletter/unsubscribe", json={"email": "hornet@example.com"})
    assert response.status_code == 400
    assert response.json()["error"] == "Confirmation is required"

    response = client.post(
        "/api/newsletter/unsubscribe",
        json={"email": "hornet@example.com", "confirm": True},
    )
    assert response.status_code == 200
    assert adapter.get_by_email("hornet@example.com").status == STATUS_UNSUBSCRIBED


def test_unsubscribe_by_email_without_active_subscription(client):
    response = client.post(
        "/api/newsletter/unsubscribe",
        json={"email": "nobody@example.com", "confirm": True},
    )

    assert response.status_code == 404


def test_resubscribe_after_unsubscribe_reactivates(client, adapter, monkeypatch):
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")
    subscribe(client, "hornet@example.com")
    token = adapter.get_by_email("hornet@example.com").unsubscribe_token
    client.post("/api/newsletter/unsubscribe", json={"token": token})

    response = subscribe(client, "hornet@example.com", ip="198.51.100.4")

    assert response.status_code == 201
    body = response.json()
    assert body["code"] == "reactivated"
    assert body["data"]["is_new_subscription"] is False
    stored = adapter.get_by_email("hornet@example.com")
    assert stored.status == STATUS_ACTIVE
    assert stored.unsubscribed_at is None
    assert stored.unsubscribe_token != token
    assert "reactivated_at" in stored.metadata


def test_newsletter_subscribe_alias(client):
    response = client.post("/api/newsletter/subscribe", json={"email": "alias@example.com"})

    assert response.status_code == 201
    assert response.json()["code"] == "created"


def test_subscriber_count_counts_active_only(client, adapter, monkeypatch):
    subscribe(client, "pending@example.com")
    monkeypatch.setenv("DOUBLE_OPT_IN", "false")
    subscribe(client, "active@example.com", ip="198.51.100.5")

    response = client.get("/api/subscriptions/count")

    assert response.status_code == 200
    assert response.json() == {"success": True, "count": 1}
    assert response.headers["Cache-Control"] == "public, max-age=300"


def test_email_failure_does_not_fail_subscription(client, adapter, monkeypatch):
    import resend

    def broken_send(params):
        raise RuntimeError("provider down")

    monkeypatch.setattr(resend.Emails, "send", broken_send)

    response = subscribe(client, "hornet@example.com")

    assert response.status_code == 201
    assert response.json()["data"]["email_sent"] is False
    assert adapter.get_by_email("hornet@example.com") is not None
