"""Pull-based reconciliation of in-flight calls.

``check_status`` asks the provider about every lead still in ``calling``
and records the raw payload for calls that have ended. It keeps no timer
of its own; the HTTP endpoint and ``scripts/leads.py reconcile --every``
decide when it runs.
"""

import logging
from dataclasses import dataclass

from leadcall.errors import InvalidTransitionError, NotFoundError
from leadcall.feedback import normalize
from leadcall.provider import CallOutcome, CallResult, VoiceProvider
from leadcall.states import LeadStatus
from leadcall.store import LeadStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    checked: int = 0
    updated: int = 0
    errors: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "total": self.checked,
            "checked": self.checked,
            "updated": self.updated,
            "errors": self.errors,
        }


class StatusReconciler:
    def __init__(self, store: LeadStore, provider: VoiceProvider):
        self.store = store
        self.provider = provider

    async def check_status(self) -> ReconcileResult:
        result = ReconcileResult()
        for lead in self.store.list_by_status(LeadStatus.CALLING):
            result.checked += 1
            if not lead.provider_call_id:
                logger.warning("Lead %d is calling without a provider call id", lead.id)
                continue

            try:
                call = await self.provider.get_call_result(lead.provider_call_id)
            except Exception as e:
                # Transient: the lead stays calling and is retried next pass
                result.errors += 1
                logger.warning(
                    "Status check failed for lead %d (call %s): %s",
                    lead.id, lead.provider_call_id, e,
                )
                continue

            if call.ended and self._record_outcome(lead.id, call):
                result.updated += 1

        logger.info(
            "Status check: checked=%d updated=%d errors=%d",
            result.checked, result.updated, result.errors,
        )
        return result

    def _record_outcome(self, lead_id: int, call: CallResult) -> bool:
        status = (
            LeadStatus.REJECTED if call.outcome == CallOutcome.DECLINED
            else LeadStatus.COMPLETED
        )
        parsed = normalize(call.raw_payload)
        try:
            self.store.update_status(lead_id, status, feedback=call.raw_payload)
        except (InvalidTransitionError, NotFoundError) as e:
            logger.warning("Could not record outcome for lead %d: %s", lead_id, e.message)
            return False

        logger.info(
            "Lead %d call ended: status=%s reason=%s responses=%d",
            lead_id, status.value, parsed.ended_reason or "n/a",
            len(parsed.customer_responses),
        )
        return True
