from __future__ import annotations

import json
from datetime import datetime, timedelta
from unittest import mock

import pytest
import requests

pytestmark = pytest.mark.unit

from graphwatch.core.clock import FixedClock
from graphwatch.core.errors import AuthUnavailable, NotFound, Rejected, Throttled, Unavailable
from graphwatch.core.records import SubscriptionSpec
from graphwatch.graph.credentials import ClientCredentialProvider, StaticCredentialProvider
from graphwatch.graph.resource_fetcher import GraphEventFetcher, attendee_states, normalize_response
from graphwatch.graph.subscription_client import GraphSubscriptionClient
from graphwatch.tests.fakes import FakeCredentials

BASE = "https://graph.example.test/v1.0"
NOW = datetime(2026, 10, 17, 12, 0)


def _response(status: int = 200, body=None, headers=None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body if body is not None else {}).encode("utf-8")
    resp.headers.update(headers or {})
    return resp


def _session(*responses) -> mock.Mock:
    http = mock.Mock(spec=requests.Session)
    http.request.side_effect = list(responses)
    return http


# ==================== Event fetcher ====================


def test_attendee_states_normalizes_addresses_and_responses():
    event = {
        "attendees": [
            {"emailAddress": {"address": "Alice@Example.com"}, "status": {"response": "accepted"}},
            {"emailAddress": {"address": "bob@example.com"}, "status": {"response": "tentativelyAccepted"}},
            {"emailAddress": {"address": "carol@example.com"}, "status": {"response": "notResponded"}},
            {"emailAddress": {"address": "dan@example.com"}},
            {"emailAddress": {}, "status": {"response": "declined"}},
        ]
    }

    assert attendee_states(event) == {
        "alice@example.com": "accepted",
        "bob@example.com": "tentative",
        "carol@example.com": "none",
        "dan@example.com": "none",
    }
    assert normalize_response("Declined") == "declined"
    assert normalize_response("something-new") == "none"


def test_fetch_builds_snapshot_with_etag():
    http = _session(
        _response(
            200,
            {
                "id": "ev-1",
                "@odata.etag": 'W/"abc"',
                "attendees": [{"emailAddress": {"address": "a@x.test"}, "status": {"response": "declined"}}],
            },
        )
    )
    fetcher = GraphEventFetcher(BASE, FakeCredentials("tok"), clock=FixedClock(NOW), timeout=7, http=http)

    snapshot = fetcher.fetch("ev-1", "Users/a@x.test/Events/ev-1")

    assert snapshot.etag == 'W/"abc"'
    assert snapshot.attendee_states == {"a@x.test": "declined"}
    assert snapshot.captured_at == NOW
    method, url = http.request.call_args.args
    assert (method, url) == ("GET", f"{BASE}/Users/a@x.test/Events/ev-1")
    assert http.request.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert http.request.call_args.kwargs["timeout"] == 7


def test_fetch_maps_throttling_to_transient_with_retry_after():
    fetcher = GraphEventFetcher(
        BASE, FakeCredentials(), http=_session(_response(429, {"error": {"code": "TooManyRequests"}}, {"Retry-After": "12"}))
    )

    with pytest.raises(Throttled) as excinfo:
        fetcher.fetch("ev-1")
    assert excinfo.value.retry_after == 12.0


@pytest.mark.parametrize(
    "status,error",
    [(404, NotFound), (403, Rejected), (500, Unavailable), (504, Unavailable)],
)
def test_fetch_status_mapping(status, error):
    fetcher = GraphEventFetcher(BASE, FakeCredentials(), http=_session(_response(status, {"error": {"message": "x"}})))

    with pytest.raises(error):
        fetcher.fetch("ev-1")


def test_transport_error_is_transient():
    http = mock.Mock(spec=requests.Session)
    http.request.side_effect = requests.ConnectionError("reset")
    fetcher = GraphEventFetcher(BASE, FakeCredentials(), http=http)

    with pytest.raises(Unavailable):
        fetcher.fetch("ev-1")


# ==================== Subscription client ====================


def _spec(**overrides) -> SubscriptionSpec:
    values = {
        "resource_path": "/users/a@x.test/events",
        "change_types": "created,updated",
        "notification_url": "https://hooks.example.test/api/webhook/notifications",
        "client_state": "s3cret",
        "expires_at": NOW + timedelta(days=2),
        "lifecycle_notification_url": "https://hooks.example.test/api/webhook/lifecycle",
    }
    values.update(overrides)
    return SubscriptionSpec(**values)


def test_create_posts_subscription_and_keeps_client_state():
    http = _session(
        _response(
            201,
            {
                "id": "abc",
                "resource": "/users/a@x.test/events",
                "changeType": "created,updated",
                "notificationUrl": "https://hooks.example.test/api/webhook/notifications",
                "expirationDateTime": "2026-10-19T12:00:00.0000000Z",
            },
        )
    )
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=http)

    record = client.create(_spec())

    body = http.request.call_args.kwargs["json"]
    assert body["clientState"] == "s3cret"
    assert body["expirationDateTime"] == "2026-10-19T12:00:00.000Z"
    assert body["lifecycleNotificationUrl"].endswith("/lifecycle")
    assert record.id == "abc"
    assert record.client_state == "s3cret"
    assert record.expires_at == NOW + timedelta(days=2)


def test_renew_patches_expiry_and_returns_granted_value():
    http = _session(_response(200, {"id": "abc", "expirationDateTime": "2026-10-18T00:00:00Z"}))
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=http)

    granted = client.renew("abc", NOW + timedelta(days=2))

    method, url = http.request.call_args.args
    assert (method, url) == ("PATCH", f"{BASE}/subscriptions/abc")
    assert http.request.call_args.kwargs["json"] == {"expirationDateTime": "2026-10-19T12:00:00.000Z"}
    assert granted == datetime(2026, 10, 18)


def test_renew_of_missing_subscription_is_fatal():
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=_session(_response(404, {})))

    with pytest.raises(NotFound):
        client.renew("abc", NOW)


def test_delete_tolerates_already_deleted():
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=_session(_response(404, {})))

    client.delete("abc")


def test_list_follows_next_link():
    item = {"resource": "/me/events", "expirationDateTime": "2026-10-18T00:00:00Z", "changeType": "updated"}
    http = _session(
        _response(200, {"value": [dict(item, id="one")], "@odata.nextLink": f"{BASE}/subscriptions?$skip=1"}),
        _response(200, {"value": [dict(item, id="two")]}),
    )
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=http)

    records = client.list()

    assert [r.id for r in records] == ["one", "two"]
    assert http.request.call_count == 2
    assert http.request.call_args.args[1] == f"{BASE}/subscriptions?$skip=1"


@pytest.mark.parametrize("expiry", ["not-a-date", 1760000000])
def test_list_with_malformed_expiry_is_unavailable(expiry):
    http = _session(_response(200, {"value": [{"id": "one", "resource": "/me/events", "expirationDateTime": expiry}]}))
    client = GraphSubscriptionClient(BASE, FakeCredentials(), http=http)

    with pytest.raises(Unavailable, match="malformed expirationDateTime"):
        client.list()


# ==================== Credentials ====================


def test_static_provider_requires_token():
    assert StaticCredentialProvider("abc").get_token() == "abc"
    with pytest.raises(AuthUnavailable):
        StaticCredentialProvider("").get_token()


def test_client_credentials_token_is_cached_until_near_expiry():
    clock = FixedClock(NOW)
    http = mock.Mock(spec=requests.Session)
    http.post.side_effect = [
        _response(200, {"access_token": "t1", "expires_in": 3600}),
        _response(200, {"access_token": "t2", "expires_in": 3600}),
    ]
    provider = ClientCredentialProvider("https://login.test/token", "id", "secret", "scope", clock=clock, http=http)

    assert provider.get_token() == "t1"
    clock.advance(timedelta(minutes=50))
    assert provider.get_token() == "t1"
    clock.advance(timedelta(minutes=6))
    assert provider.get_token() == "t2"
    assert http.post.call_count == 2
    assert http.post.call_args.kwargs["data"]["grant_type"] == "client_credentials"


def test_client_credentials_failure_is_transient():
    http = mock.Mock(spec=requests.Session)
    http.post.return_value = _response(401, {"error": "invalid_client"})
    provider = ClientCredentialProvider("https://login.test/token", "id", "secret", "scope", http=http)

    with pytest.raises(AuthUnavailable):
        provider.get_token()


def test_missing_client_credentials():
    provider = ClientCredentialProvider("https://login.test/token", "", "", "scope", http=mock.Mock())

    with pytest.raises(AuthUnavailable):
        provider.get_token()
