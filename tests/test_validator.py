"""Tests for the inbox validation state machine."""

import json

import pytest

from core.crypto import generate_keypair
from core.envelope import encode_envelope
from core.errors import ClientError, ResolverError
from core.validator import (
    InboundRequest,
    handle_request,
    validate_listen_event,
    validate_request,
)

KP = generate_keypair()
FEED = "https://example.com/feed.xml"
JKU = "https://keys.example.com/jwks.json"
KID = "20221006160629015"

EVENT = {
    "kind": "listen",
    "feedUrl": FEED,
    "episodeUrl": "https://example.com/e1.mp3",
    "userAgent": "ua",
    "time": "2022-10-05T17:31:16.254Z",
    "quartile": "50%",
    "listenerId": "fb4b9a2d-bb72-48f4-96e7-482f7c7f8db9",
}


def resolver_returning(pk):
    async def resolve(jku, kid):
        return pk
    return resolve


RESOLVER = resolver_returning(KP.public_key)


def signed_request(body, sub=FEED, method="POST", **header_overrides) -> InboundRequest:
    content = body if isinstance(body, bytes) else json.dumps(body).encode("utf-8")
    envelope = encode_envelope(sub, JKU, KID, KP.private_key, content)
    headers = {"Authorization": f"Bearer {envelope}", **header_overrides}
    return InboundRequest(method=method, headers=headers, body=content)


async def respond(request, resolver=RESOLVER):
    resp = await handle_request(request, resolver)
    return resp.status, json.loads(resp.body)


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_single_listen_event(self):
        status, body = await respond(signed_request({"events": [EVENT]}))
        assert status == 200
        assert body == {"validListenEvents": 1, "feedUrl": FEED, "jwk": f"{JKU}#{KID}"}

    @pytest.mark.asyncio
    async def test_response_headers_and_pretty_json(self):
        resp = await handle_request(signed_request({"events": [EVENT]}), RESOLVER)
        assert resp.headers["content-type"] == "application/json; charset=utf-8"
        assert resp.headers["access-control-allow-origin"] == "*"
        assert resp.body.startswith('{\n  "validListenEvents": 1')

    @pytest.mark.asyncio
    async def test_top_level_fields_are_event_defaults(self):
        shared = {"kind": "listen", "userAgent": "send", "feedUrl": FEED}
        events = [
            {k: v for k, v in EVENT.items() if k not in shared},
            {**{k: v for k, v in EVENT.items() if k not in shared}, "userAgent": "override"},
        ]
        status, body = await respond(signed_request({**shared, "events": events}))
        assert status == 200
        assert body["validListenEvents"] == 2

    @pytest.mark.asyncio
    async def test_empty_events_array(self):
        status, body = await respond(signed_request({"events": []}))
        assert status == 200
        assert body["validListenEvents"] == 0


class TestGates:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE", "OPTIONS", "post", "Post"])
    async def test_non_post_is_405(self, method):
        status, body = await respond(signed_request({"events": [EVENT]}, method=method))
        assert status == 405
        assert body == {"error": "This endpoint only supports POST requests"}

    @pytest.mark.asyncio
    async def test_missing_authorization_is_401(self):
        req = InboundRequest(method="POST", headers={}, body=b"{}")
        status, body = await respond(req)
        assert status == 401
        assert body == {"error": "Expected Authorization header"}

    @pytest.mark.asyncio
    async def test_authorization_lookup_is_case_insensitive(self):
        req = signed_request({"events": [EVENT]})
        req.headers = {"authorization": req.headers["Authorization"]}
        status, _ = await respond(req)
        assert status == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", ["Basic abc", "Bearer", "Bearer ", "Bearer a b", "bearer abc"])
    async def test_bad_authorization_is_403(self, value):
        req = InboundRequest(method="POST", headers={"Authorization": value}, body=b"{}")
        status, body = await respond(req)
        assert status == 403
        assert body["error"] == "Bad Authorization header, expected 'Bearer <jwt>"

    @pytest.mark.asyncio
    async def test_body_read_failure_is_400(self):
        req = signed_request({"events": [EVENT]})
        req.body_error = "connection reset"
        status, body = await respond(req)
        assert status == 400
        assert body == {"error": "connection reset"}

    @pytest.mark.asyncio
    async def test_bad_envelope_is_403(self):
        req = InboundRequest(method="POST", headers={"Authorization": "Bearer nope"}, body=b"{}")
        status, body = await respond(req)
        assert status == 403
        assert body == {"error": "Unexpected JWT format"}

    @pytest.mark.asyncio
    async def test_tampered_body_is_403(self):
        req = signed_request({"events": [EVENT]})
        req.body = req.body.replace(b"50%", b"75%")
        status, body = await respond(req)
        assert status == 403
        assert "does not match sha" in body["error"]

    @pytest.mark.asyncio
    async def test_resolver_failure_is_403(self):
        async def failing(jku, kid):
            raise ResolverError(f"Key ID {kid} not found at {jku}")

        status, body = await respond(signed_request({"events": [EVENT]}), failing)
        assert status == 403
        assert body == {"error": f"Key ID {KID} not found at {JKU}"}

    @pytest.mark.asyncio
    async def test_sub_not_url_is_400(self):
        status, body = await respond(signed_request({"events": []}, sub="not a url"))
        assert status == 400
        assert body == {"error": "Bad 'sub' claim, expected feedUrl"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content, message", [
        (b"\xff\xfe", "Bad request body, expected json text"),
        (b"{not json", "Bad request body, expected valid json"),
        (b"[" * 100000 + b"]" * 100000, "Bad request body, expected valid json"),
        (b"[]", "Bad request body, expected json object"),
        (b"null", "Bad request body, expected json object"),
        (b'{"events": {}}', "Bad request body, expected top-level 'events' array"),
        (b"{}", "Bad request body, expected top-level 'events' array"),
    ])
    async def test_body_shape_is_400(self, content, message):
        status, body = await respond(signed_request(content))
        assert status == 400
        assert body == {"error": message}


class TestEventRules:
    @pytest.mark.asyncio
    async def test_feed_url_mismatch_references_event_number(self):
        event = {**EVENT, "feedUrl": "https://other.example.com/feed.xml"}
        status, body = await respond(signed_request({"events": [event]}))
        assert status == 400
        assert body["error"].startswith("Bad request body event number 1, ")
        assert "to match sub" in body["error"]

    @pytest.mark.asyncio
    async def test_first_bad_event_aborts_request(self):
        bad = {**EVENT, "listenerId": "not-a-uuid"}
        status, body = await respond(signed_request({"events": [EVENT, bad, {**EVENT, "kind": 1}]}))
        assert status == 400
        assert body == {"error": "Bad request body event number 2, invalid listenerId not-a-uuid"}

    @pytest.mark.parametrize("overrides, message", [
        ({"kind": None}, "expected 'kind' string"),
        ({"kind": "download"}, "this validator only supports the 'listen' event kind"),
        ({"feedUrl": 5}, "expected 'feedUrl' string"),
        ({"episodeUrl": None}, "expected 'episodeUrl' string"),
        ({"userAgent": []}, "expected 'userAgent' string"),
        ({"referer": None}, "expected 'referer' string"),
        ({"time": 1665000000}, "expected 'time' string"),
        ({"time": "2022-10-05T17:31:16Z"}, "invalid time 2022-10-05T17:31:16Z"),
        ({"quartile": 50}, "expected 'quartile' string"),
        ({"listenerId": None}, "expected 'listenerId' string"),
    ])
    def test_rule_messages(self, overrides, message):
        with pytest.raises(ClientError) as exc:
            validate_listen_event(3, {**EVENT, **overrides}, {}, FEED)
        assert str(exc.value) == f"Bad request body event number 3, {message}"
        assert exc.value.status == 400

    def test_missing_fields(self):
        event = {k: v for k, v in EVENT.items() if k != "quartile"}
        with pytest.raises(ClientError, match="expected 'quartile' string"):
            validate_listen_event(1, event, {}, FEED)

    def test_referer_optional(self):
        validate_listen_event(1, EVENT, {}, FEED)
        validate_listen_event(1, {**EVENT, "referer": "https://ref.example.com/"}, {}, FEED)

    def test_event_not_object(self):
        with pytest.raises(ClientError, match="event number 1, expected json object"):
            validate_listen_event(1, ["listen"], {"kind": "listen"}, FEED)

    def test_event_fields_override_defaults(self):
        with pytest.raises(ClientError, match="only supports the 'listen'"):
            validate_listen_event(1, {**EVENT, "kind": "download"}, {"kind": "listen"}, FEED)


class TestInternalErrors:
    @pytest.mark.asyncio
    async def test_unexpected_exception_is_500_with_raw_message(self, monkeypatch):
        import core.validator as validator

        def boom(claims):
            raise RuntimeError("boom")

        monkeypatch.setattr(validator, "_check_claims", boom)
        status, body = await respond(signed_request({"events": [EVENT]}))
        assert status == 500
        assert body == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_validate_request_returns_result(self):
        result = await validate_request(signed_request({"events": [EVENT, EVENT]}), RESOLVER)
        assert result.valid_listen_event_count == 2
        assert result.feed_url == FEED
        assert result.jwk_locator == f"{JKU}#{KID}"
