from leadcall.feedback import normalize
from leadcall.lead import Lead


def display_sort_key(lead: Lead) -> tuple:
    """completed < rejected < calling < pending, newest first within a status."""
    return (lead.status.display_priority, -lead.created_at.timestamp())


def sort_for_display(leads: list[Lead]) -> list[Lead]:
    return sorted(leads, key=display_sort_key)


def lead_view(lead: Lead) -> dict:
    view = lead.to_dict()
    view["has_feedback"] = lead.has_feedback
    return view


def feedback_view(lead: Lead) -> dict:
    """Lead contact details plus the normalized form of its raw feedback."""
    return {
        "id": lead.id,
        "name": lead.name,
        "phone": lead.phone,
        "email": lead.email,
        "status": lead.status.value,
        "called_at": lead.called_at.isoformat() if lead.called_at else None,
        "feedback": normalize(lead.feedback).to_dict(),
    }
