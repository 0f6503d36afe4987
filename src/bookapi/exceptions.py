"""
═══════════════════════════════════════════════════════════════════════════════
BookAPI: Domain error hierarchy (Custom Exception Hierarchy)
═══════════════════════════════════════════════════════════════════════════════

Every lifecycle failure is a ``BookApiError`` carrying a stable string code.
The code → HTTP status mapping lives on each class (``status_code``) and is
applied by ``bookapi.main:bookapi_error_handler``.
"""


class BookApiError(Exception):
    """
    Base exception for all BookAPI domain errors.

    Attributes
    ──────────
        message (str):  Human-readable description, sent to the client.
        code (str):     Stable error kind.
        details (dict): Extra data (field, account_id ...).
    """

    code = "INTERNAL"
    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict | None = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationFailedError(BookApiError):
    """Malformed input: 422."""

    code = "VALIDATION_FAILED"
    status_code = 422

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, details=details)


class ConflictError(BookApiError):
    """Uniqueness violation: 409."""

    code = "CONFLICT"
    status_code = 409

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, details=details)


class NotFoundError(BookApiError):
    """Entity not found: 404."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )


class ForbiddenError(BookApiError):
    """Role check failed: 403."""

    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class UnauthenticatedError(BookApiError):
    """Missing or invalid session token: 401."""

    code = "UNAUTHENTICATED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InvalidCredentialsError(BookApiError):
    """Unknown email or wrong password, deliberately indistinguishable: 401."""

    code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self, message: str = "Invalid credentials."):
        super().__init__(message)


class EmailNotVerifiedError(BookApiError):
    """Login attempted before OTP verification: 403."""

    code = "EMAIL_NOT_VERIFIED"
    status_code = 403

    def __init__(self, account_id: str):
        super().__init__(
            "Email is not verified. Verify the code sent to your inbox first.",
            details={"account_id": account_id},
        )


class NotApprovedError(BookApiError):
    """Login attempted before approval: 403."""

    code = "NOT_APPROVED"
    status_code = 403

    def __init__(self, message: str = "Account not approved yet."):
        super().__init__(message)


class NotVerifiedError(BookApiError):
    """Approval attempted on an unverified account: 409."""

    code = "NOT_VERIFIED"
    status_code = 409

    def __init__(self, account_id: str):
        super().__init__(
            "Account email must be verified before approval.",
            details={"account_id": account_id},
        )


class AlreadyVerifiedError(BookApiError):
    code = "ALREADY_VERIFIED"
    status_code = 409

    def __init__(self, message: str = "Email is already verified."):
        super().__init__(message)


class NoCodeIssuedError(BookApiError):
    code = "NO_CODE_ISSUED"
    status_code = 400

    def __init__(self, message: str = "No verification code was issued. Request a new one."):
        super().__init__(message)


class OtpExpiredError(BookApiError):
    code = "OTP_EXPIRED"
    status_code = 410

    def __init__(self, message: str = "Verification code has expired. Request a new one."):
        super().__init__(message)


class OtpMismatchError(BookApiError):
    code = "OTP_MISMATCH"
    status_code = 400

    def __init__(self, message: str = "Invalid verification code."):
        super().__init__(message)


class DeliveryFailedError(BookApiError):
    """The notifier could not deliver a message the caller depends on: 502."""

    code = "DELIVERY_FAILED"
    status_code = 502

    def __init__(self, message: str = "Failed to send email. Please try again."):
        super().__init__(message)


class InternalError(BookApiError):
    """Unexpected store or collaborator failure: 500."""

    def __init__(self, message: str = "Internal server error", details: dict | None = None):
        super().__init__(message, details=details)


class NotificationError(Exception):
    """Raised by notifiers when a message cannot be delivered."""


__all__ = [
    "BookApiError",
    "ValidationFailedError",
    "ConflictError",
    "NotFoundError",
    "ForbiddenError",
    "UnauthenticatedError",
    "InvalidCredentialsError",
    "EmailNotVerifiedError",
    "NotApprovedError",
    "NotVerifiedError",
    "AlreadyVerifiedError",
    "NoCodeIssuedError",
    "OtpExpiredError",
    "OtpMismatchError",
    "DeliveryFailedError",
    "InternalError",
    "NotificationError",
]
