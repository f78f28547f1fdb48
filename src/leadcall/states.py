from enum import Enum

TERMINAL_STATUSES = {"completed", "rejected"}

# Lower sorts first on the operator dashboard
DISPLAY_PRIORITY = {
    "completed": 0,
    "rejected": 1,
    "calling": 2,
    "pending": 3,
}


class LeadStatus(Enum):
    PENDING = "pending"
    CALLING = "calling"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self.value in TERMINAL_STATUSES

    @property
    def display_priority(self) -> int:
        return DISPLAY_PRIORITY[self.value]


TRANSITIONS = {
    LeadStatus.PENDING: {LeadStatus.CALLING},
    LeadStatus.CALLING: {LeadStatus.COMPLETED, LeadStatus.REJECTED},
    LeadStatus.COMPLETED: set(),
    LeadStatus.REJECTED: set(),
}


def can_transition(current: LeadStatus, target: LeadStatus) -> bool:
    return target in TRANSITIONS.get(current, set())
