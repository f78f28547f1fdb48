"""Error taxonomy for the lead call workflow.

Every error carries a stable ``kind`` so the HTTP layer can surface a
``{kind, message}`` pair without leaking internals.
"""


class LeadCallError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(LeadCallError):
    kind = "validation_error"


class NotFoundError(LeadCallError):
    kind = "not_found"


class InvalidTransitionError(LeadCallError):
    kind = "invalid_transition"


class DispatchError(LeadCallError):
    """Provider refused or failed to place a call. The lead stays pending."""

    kind = "dispatch_error"


class ProviderError(LeadCallError):
    """Transient failure querying the provider for a call result."""

    kind = "provider_error"


class AuthError(LeadCallError):
    kind = "unauthorized"
