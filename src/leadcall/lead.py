from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from leadcall.states import LeadStatus


@dataclass(frozen=True)
class Lead:
    """Snapshot of one lead record.

    Instances are read-only copies handed out by LeadStore; mutations go
    back through the store so no component holds stale state across calls.
    """

    id: int
    name: str
    phone: str
    email: str
    status: LeadStatus
    created_at: datetime

    # Set on dispatch
    provider_call_id: Optional[str] = None
    called_at: Optional[datetime] = None

    # Set on reconciliation (raw provider payload)
    feedback: Optional[str] = None

    campaign_type: Optional[str] = None

    @property
    def has_feedback(self) -> bool:
        return bool(self.feedback)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "status": self.status.value,
            "provider_call_id": self.provider_call_id,
            "feedback": self.feedback,
            "campaign_type": self.campaign_type,
            "created_at": self.created_at.isoformat(),
            "called_at": self.called_at.isoformat() if self.called_at else None,
        }
