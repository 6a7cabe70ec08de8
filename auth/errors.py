"""
auth/errors.py -- Typed failure taxonomy for the auth core.

Every failure raised by the hasher, token codec, stores, mailer, or service is
an AuthError subclass carrying an HTTP status, a stable machine code, and a
stable human message. api/main.py renders all of them through one exception
handler into the ErrorResponse envelope, so route code never picks a status.

detail is optional free text. It is only rendered for 500s (the underlying
store, crypto, or mail failure) and never contains a traceback.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, detail: str | None = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class AuthenticationError(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class AuthorizationError(AuthError):
    status_code = 403
    code = "forbidden"
    default_message = "Access denied"


class NotFoundError(AuthError):
    status_code = 404
    code = "not_found"
    default_message = "User not found"


class ConflictError(AuthError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."


class InternalError(AuthError):
    pass


# ---------------------------------------------------------------------------
# Store-level failures
# ---------------------------------------------------------------------------


class DuplicateNameError(ConflictError):
    default_message = "A role with that name already exists."


class ConstraintViolationError(ValidationError):
    code = "constraint_violation"
    default_message = "Referenced user or role does not exist."


# ---------------------------------------------------------------------------
# Collaborator failures
# ---------------------------------------------------------------------------


class MailError(InternalError):
    code = "mail_error"
    default_message = "Could not send email."


class KeyMaterialError(InternalError):
    """Signing key files are missing or unreadable. Raised at startup only."""

    code = "key_material_error"
    default_message = "Signing key material could not be loaded."
