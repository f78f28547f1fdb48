import logging
from dataclasses import dataclass, field

from leadcall.errors import DispatchError, InvalidTransitionError, LeadCallError, NotFoundError
from leadcall.provider import VoiceProvider
from leadcall.states import LeadStatus
from leadcall.store import LeadStore

logger = logging.getLogger(__name__)


class CallDispatcher:
    """Places one outbound call and moves the lead from pending to calling.

    The lead is only touched after the provider hands back a call id, so a
    failed placement leaves it pending and eligible for another attempt.
    """

    def __init__(self, store: LeadStore, provider: VoiceProvider):
        self.store = store
        self.provider = provider

    async def dispatch(self, lead_id: int) -> str:
        lead = self.store.get(lead_id)
        if lead.status != LeadStatus.PENDING:
            raise InvalidTransitionError(
                f"Lead {lead_id} is {lead.status.value}; only pending leads can be called"
            )

        try:
            call_id = await self.provider.place_call(lead.name, lead.phone, lead.email)
        except DispatchError:
            raise
        except Exception as e:
            logger.error("Provider raised while calling lead %d: %s", lead_id, e)
            raise DispatchError(f"Failed to initiate call: {e}") from e

        try:
            self.store.update_status(
                lead_id,
                LeadStatus.CALLING,
                provider_call_id=call_id,
                called_at=self.store.now(),
            )
        except (InvalidTransitionError, NotFoundError) as e:
            logger.error("Call %s placed for lead %d but not recorded: %s", call_id, lead_id, e.message)
            raise
        logger.info("Dispatched call %s for lead %d", call_id, lead_id)
        return call_id


@dataclass
class DispatchOutcome:
    lead_id: int
    name: str
    provider_call_id: str | None = None
    error: dict | None = None

    @property
    def ok(self) -> bool:
        return self.provider_call_id is not None

    def to_dict(self) -> dict:
        result = {"leadId": self.lead_id, "name": self.name}
        if self.ok:
            result["callId"] = self.provider_call_id
        else:
            result["error"] = self.error
        return result


@dataclass
class BulkResult:
    outcomes: list = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return self.attempted - self.succeeded

    @property
    def message(self) -> str:
        if not self.attempted:
            return "No pending leads to call"
        if not self.failed:
            return f"Initiated {self.succeeded} calls"
        return f"Initiated {self.succeeded} of {self.attempted} calls ({self.failed} failed)"

    def to_dict(self) -> dict:
        return {
            "message": self.message,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "results": [o.to_dict() for o in self.outcomes],
        }


class BulkDispatcher:
    """Calls every lead that is pending when the run starts.

    Each lead is dispatched on its own: one failure is recorded in the
    result and the run moves on. There is no retry within a run.
    """

    def __init__(self, store: LeadStore, dispatcher: CallDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    async def dispatch_all_pending(self) -> BulkResult:
        snapshot = self.store.list_by_status(LeadStatus.PENDING)
        result = BulkResult()
        for lead in snapshot:
            try:
                call_id = await self.dispatcher.dispatch(lead.id)
            except LeadCallError as e:
                logger.warning("Bulk dispatch skipped lead %d: %s", lead.id, e.message)
                result.outcomes.append(
                    DispatchOutcome(lead_id=lead.id, name=lead.name, error=e.to_dict())
                )
                continue
            result.outcomes.append(
                DispatchOutcome(lead_id=lead.id, name=lead.name, provider_call_id=call_id)
            )

        logger.info(
            "Bulk dispatch: attempted=%d succeeded=%d", result.attempted, result.succeeded
        )
        return result
