import json

import httpx
import pytest
import respx

from leadcall.errors import DispatchError, ProviderError
from leadcall.provider import (
    CallOutcome,
    CallResult,
    VapiClient,
    build_feedback_payload,
)

BASE_URL = "https://vapi.test"


@pytest.fixture
def client():
    return VapiClient(
        api_key="test-key",
        assistant_id="asst_1",
        phone_number_id="pn_1",
        base_url=BASE_URL,
    )


class TestPlaceCall:
    @pytest.mark.asyncio
    async def test_returns_call_id_and_sends_payload(self, client):
        with respx.mock:
            route = respx.post(f"{BASE_URL}/call").mock(
                return_value=httpx.Response(201, json={"id": "call_abc", "status": "queued"})
            )
            call_id = await client.place_call("Jonas", "+15125551234", "jonas@example.com")

        assert call_id == "call_abc"
        req = route.calls[0].request
        assert req.headers["authorization"] == "Bearer test-key"
        body = json.loads(req.content)
        assert body["assistantId"] == "asst_1"
        assert body["phoneNumberId"] == "pn_1"
        assert body["customer"] == {
            "number": "+15125551234", "name": "Jonas", "email": "jonas@example.com",
        }

    @pytest.mark.asyncio
    async def test_rejected_number_raises_with_detail(self, client):
        with respx.mock:
            respx.post(f"{BASE_URL}/call").mock(
                return_value=httpx.Response(400, json={"message": ["customer.number must be E.164"]})
            )
            with pytest.raises(DispatchError, match="E.164"):
                await client.place_call("Jonas", "5551234", "jonas@example.com")

    @pytest.mark.asyncio
    async def test_server_error_raises(self, client):
        with respx.mock:
            respx.post(f"{BASE_URL}/call").mock(return_value=httpx.Response(503))
            with pytest.raises(DispatchError, match="503"):
                await client.place_call("Jonas", "+15125551234", "jonas@example.com")

    @pytest.mark.asyncio
    async def test_network_error_raises(self, client):
        with respx.mock:
            respx.post(f"{BASE_URL}/call").mock(side_effect=httpx.ConnectError("boom"))
            with pytest.raises(DispatchError, match="Could not reach"):
                await client.place_call("Jonas", "+15125551234", "jonas@example.com")

    @pytest.mark.asyncio
    async def test_missing_id_raises(self, client):
        with respx.mock:
            respx.post(f"{BASE_URL}/call").mock(return_value=httpx.Response(201, json={}))
            with pytest.raises(DispatchError, match="no call id"):
                await client.place_call("Jonas", "+15125551234", "jonas@example.com")

    @pytest.mark.asyncio
    async def test_breaker_opens_after_repeated_outages(self, client):
        with respx.mock:
            route = respx.post(f"{BASE_URL}/call").mock(return_value=httpx.Response(500))
            for _ in range(3):
                with pytest.raises(DispatchError):
                    await client.place_call("Jonas", "+15125551234", "jonas@example.com")
            with pytest.raises(DispatchError, match="unavailable"):
                await client.place_call("Jonas", "+15125551234", "jonas@example.com")
        assert route.call_count == 3

    @pytest.mark.asyncio
    async def test_client_rejections_do_not_open_breaker(self, client):
        with respx.mock:
            route = respx.post(f"{BASE_URL}/call").mock(
                return_value=httpx.Response(400, json={"message": "bad number"})
            )
            for _ in range(4):
                with pytest.raises(DispatchError, match="bad number"):
                    await client.place_call("Jonas", "123", "jonas@example.com")
        assert route.call_count == 4


class TestGetCallResult:
    @pytest.mark.asyncio
    async def test_in_progress_is_pending(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(
                return_value=httpx.Response(200, json={"id": "call_1", "status": "in-progress"})
            )
            result = await client.get_call_result("call_1")
        assert result == CallResult.pending()
        assert not result.ended

    @pytest.mark.asyncio
    async def test_ended_call_returns_payload(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(
                return_value=httpx.Response(200, json={
                    "id": "call_1",
                    "status": "ended",
                    "endedReason": "assistant-ended-call",
                    "transcript": "AI: How satisfied are you?\nUser: Very",
                    "analysis": {"summary": "Went well"},
                    "startedAt": "2026-03-01T10:00:00.000Z",
                    "endedAt": "2026-03-01T10:01:30.000Z",
                })
            )
            result = await client.get_call_result("call_1")

        assert result.ended
        assert result.outcome == CallOutcome.SUCCESS
        payload = json.loads(result.raw_payload)
        assert payload["summary"] == "Went well"
        assert payload["duration"] == 90.0
        assert payload["endedReason"] == "assistant-ended-call"

    @pytest.mark.asyncio
    async def test_declined_end_reason(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(
                return_value=httpx.Response(200, json={
                    "id": "call_1", "status": "ended", "endedReason": "customer-busy",
                })
            )
            result = await client.get_call_result("call_1")
        assert result.outcome == CallOutcome.DECLINED

    @pytest.mark.asyncio
    async def test_custom_declined_reasons(self):
        client = VapiClient(
            api_key="k", assistant_id="a", phone_number_id="p", base_url=BASE_URL,
            declined_end_reasons=frozenset({"customer-ended-call"}),
        )
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(
                return_value=httpx.Response(200, json={
                    "status": "ended", "endedReason": "customer-ended-call",
                })
            )
            result = await client.get_call_result("call_1")
        assert result.outcome == CallOutcome.DECLINED

    @pytest.mark.asyncio
    async def test_http_error_raises_provider_error(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(return_value=httpx.Response(502))
            with pytest.raises(ProviderError):
                await client.get_call_result("call_1")

    @pytest.mark.asyncio
    async def test_timeout_raises_provider_error(self, client):
        with respx.mock:
            respx.get(f"{BASE_URL}/call/call_1").mock(side_effect=httpx.ReadTimeout("slow"))
            with pytest.raises(ProviderError):
                await client.get_call_result("call_1")


class TestBuildFeedbackPayload:
    def test_explicit_duration_kept(self):
        payload = build_feedback_payload({"duration": 42, "status": "ended"})
        assert payload["duration"] == 42

    def test_transcript_from_artifact(self):
        payload = build_feedback_payload({"artifact": {"transcript": "AI: hi"}})
        assert payload["transcript"] == "AI: hi"

    def test_bad_timestamps_give_unknown_duration(self):
        payload = build_feedback_payload({"startedAt": "yesterday", "endedAt": "today"})
        assert payload["duration"] is None


class TestClientLifecycle:
    def test_accepts_injected_client(self):
        injected = httpx.AsyncClient(base_url="https://injected.local")
        client = VapiClient(api_key="k", assistant_id="a", phone_number_id="p", client=injected)
        assert client._client is injected

    @pytest.mark.asyncio
    async def test_close_cleans_up(self, client):
        await client.close()
        assert client._client.is_closed
