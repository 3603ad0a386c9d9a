"""
Error taxonomy for the invitation and campaign engine.

Services raise these; app.main renders them as JSON with a stable machine
code so the landing pages can choose the right recovery action.
"""


class RedemptionEngineError(Exception):
    """Base exception for ledger and redemption failures."""

    status_code = 500
    code = "internal"
    default_message = "An internal error occurred."

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class PermissionDenied(RedemptionEngineError):
    status_code = 403
    code = "permission_denied"
    default_message = "You do not have permission to perform this action."


class InvalidArgument(RedemptionEngineError):
    status_code = 400
    code = "invalid_argument"
    default_message = "The request is missing or has invalid fields."


class NotFound(RedemptionEngineError):
    status_code = 404
    code = "not_found"
    default_message = "The requested invitation or campaign does not exist."


class FailedPrecondition(RedemptionEngineError):
    status_code = 409
    code = "failed_precondition"
    default_message = "This action is not allowed in the current state."


class Expired(RedemptionEngineError):
    status_code = 410
    code = "expired"
    default_message = "This invitation has expired. Ask your property manager to send a new one."


class AlreadyUsed(RedemptionEngineError):
    status_code = 409
    code = "already_used"
    default_message = "This invitation has already been used. Sign in with the account that accepted it."


class CapReached(RedemptionEngineError):
    status_code = 409
    code = "cap_reached"
    default_message = "This sign-up link has reached its maximum number of uses. Contact your property manager."


class EmailMismatch(RedemptionEngineError):
    status_code = 403
    code = "email_mismatch"
    default_message = (
        "This invitation was sent to a different email address. "
        "Sign in with the invited email address to accept it."
    )
