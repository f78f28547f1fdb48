import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Protocol

import httpx

from leadcall.circuit_breaker import CircuitBreaker
from leadcall.errors import DispatchError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vapi.ai"
DEFAULT_DECLINED_END_REASONS = frozenset({
    "customer-busy",
    "customer-did-not-answer",
})


class CallOutcome(Enum):
    SUCCESS = "success"
    DECLINED = "declined"


@dataclass(frozen=True)
class CallResult:
    """Provider view of one call: still in flight, or ended with a payload."""

    ended: bool
    raw_payload: str = ""
    outcome: CallOutcome | None = None

    @classmethod
    def pending(cls) -> "CallResult":
        return cls(ended=False)

    @classmethod
    def finished(cls, raw_payload: str, outcome: CallOutcome = CallOutcome.SUCCESS) -> "CallResult":
        return cls(ended=True, raw_payload=raw_payload, outcome=outcome)


class VoiceProvider(Protocol):
    async def place_call(self, name: str, phone: str, email: str) -> str:
        ...

    async def get_call_result(self, call_id: str) -> CallResult:
        ...


def _seconds_between(started: str | None, ended: str | None) -> float | None:
    if not started or not ended:
        return None
    try:
        start = datetime.fromisoformat(started.replace("Z", "+00:00"))
        end = datetime.fromisoformat(ended.replace("Z", "+00:00"))
    except ValueError:
        return None
    return max((end - start).total_seconds(), 0.0)


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return resp.text[:200]


def build_feedback_payload(call: dict) -> dict:
    """Pick the post-call fields worth keeping from a provider call record."""
    analysis = call.get("analysis") if isinstance(call.get("analysis"), dict) else {}
    artifact = call.get("artifact") if isinstance(call.get("artifact"), dict) else {}
    duration = call.get("duration")
    if duration is None:
        duration = _seconds_between(call.get("startedAt"), call.get("endedAt"))
    return {
        "summary": call.get("summary") or analysis.get("summary", ""),
        "transcript": call.get("transcript") or artifact.get("transcript", ""),
        "duration": duration,
        "endedReason": call.get("endedReason", ""),
        "status": call.get("status", ""),
        "analysis": analysis,
    }


class VapiClient:
    """HTTP client for a Vapi-style outbound calling API.

    Wraps each request with a circuit breaker: after 3 consecutive provider
    failures, calls are refused locally for 60s instead of piling onto a
    provider that is already down. Failures surface as DispatchError when
    placing a call and ProviderError when polling for a result.
    """

    def __init__(
        self,
        api_key: str,
        assistant_id: str,
        phone_number_id: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        declined_end_reasons: frozenset[str] = DEFAULT_DECLINED_END_REASONS,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.assistant_id = assistant_id
        self.phone_number_id = phone_number_id
        self.declined_end_reasons = frozenset(declined_end_reasons)
        self._circuit = CircuitBreaker(
            failure_threshold=3,
            cooldown_seconds=60.0,
            label="voice provider",
        )
        if client is not None:
            self._client = client
        else:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {api_key}",
                },
                timeout=timeout,
            )

    async def close(self):
        """Close the shared HTTP client. Call at shutdown."""
        await self._client.aclose()

    async def place_call(self, name: str, phone: str, email: str) -> str:
        if not self._circuit.should_try():
            logger.warning("Provider circuit breaker open, refusing call to %s", phone)
            raise DispatchError("Voice provider unavailable, try again later")
        try:
            resp = await self._client.post(
                "/call",
                json={
                    "assistantId": self.assistant_id,
                    "phoneNumberId": self.phone_number_id,
                    "customer": {"number": phone, "name": name, "email": email},
                },
            )
        except httpx.HTTPError as e:
            self._circuit.record_failure()
            logger.error("place_call failed for %s: %s", phone, e)
            raise DispatchError(f"Could not reach voice provider: {e}") from e

        if resp.status_code >= 500:
            self._circuit.record_failure()
            logger.error("place_call provider error %d: %s", resp.status_code, resp.text[:500])
            raise DispatchError(f"Voice provider error ({resp.status_code})")
        # 4xx is the provider rejecting this request, not the provider being down
        self._circuit.record_success()
        if resp.status_code >= 400:
            detail = _error_detail(resp)
            logger.error("place_call rejected %d for %s: %s", resp.status_code, phone, detail)
            raise DispatchError(f"Voice provider rejected call: {detail}")

        try:
            call_id = resp.json().get("id")
        except (ValueError, AttributeError):
            call_id = None
        if not call_id:
            raise DispatchError("Voice provider returned no call id")
        return str(call_id)

    async def get_call_result(self, call_id: str) -> CallResult:
        if not self._circuit.should_try():
            raise ProviderError("Voice provider unavailable")
        try:
            resp = await self._client.get(f"/call/{call_id}")
            resp.raise_for_status()
            call = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            self._circuit.record_failure()
            logger.error("get_call_result failed for %s: %s", call_id, e)
            raise ProviderError(f"Could not fetch call {call_id}: {e}") from e
        self._circuit.record_success()

        if not isinstance(call, dict) or call.get("status") != "ended":
            return CallResult.pending()

        payload = build_feedback_payload(call)
        outcome = (
            CallOutcome.DECLINED
            if payload["endedReason"] in self.declined_end_reasons
            else CallOutcome.SUCCESS
        )
        return CallResult.finished(json.dumps(payload), outcome)
