"""
Error taxonomy for the Telegram inject endpoint.

Every failure the endpoint can hit is an InjectError subclass carrying the
HTTP status it maps to. Helpers raise; only the router turns these into
responses.
"""


class InjectError(Exception):
    """Base class for inject failures that resolve to an HTTP response."""

    status_code = 400

    def __init__(self, message: str, error_code: str):
        super().__init__(message)
        self.error_code = error_code
        self.message = message


# ---------------------------------------------------------------------------
# Body reading
# ---------------------------------------------------------------------------

class PayloadTooLargeError(InjectError):
    status_code = 413

    def __init__(self, message: str = "payload too large"):
        super().__init__(message, "payload_too_large")


class MalformedJsonError(InjectError):
    def __init__(self, message: str):
        super().__init__(message, "malformed_json")


class TransportError(InjectError):
    def __init__(self, message: str):
        super().__init__(message, "transport_error")


# ---------------------------------------------------------------------------
# Request classification / validation
# ---------------------------------------------------------------------------

class MissingBoundaryError(InjectError):
    def __init__(self, message: str = "missing multipart boundary"):
        super().__init__(message, "missing_boundary")


class MissingPayloadFieldError(InjectError):
    def __init__(self, message: str = "missing payload field"):
        super().__init__(message, "missing_payload_field")


class InvalidPayloadJsonError(InjectError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_payload_json")


class MissingUpdateError(InjectError):
    def __init__(self, message: str = "update required"):
        super().__init__(message, "missing_update")


class InvalidUpdateShapeError(InjectError):
    def __init__(self, message: str = "invalid update format"):
        super().__init__(message, "invalid_update_shape")


class NoMessageInUpdateError(InjectError):
    def __init__(self, message: str = "no message in update"):
        super().__init__(message, "no_message_in_update")


# ---------------------------------------------------------------------------
# Account resolution / authentication
# ---------------------------------------------------------------------------

class AccountResolutionError(InjectError):
    """The requested account is missing or its config is malformed."""

    def __init__(self, message: str):
        super().__init__(message, "account_resolution_failed")


class InjectionNotConfiguredError(InjectError):
    status_code = 503

    def __init__(
        self,
        message: str = (
            "telegram inject not enabled "
            "(set channels.telegram.accounts.<id>.inject.enabled)"
        ),
    ):
        super().__init__(message, "inject_not_configured")


class InjectionMisconfiguredError(InjectError):
    """Inject is enabled for an account but no secret is set."""

    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, "inject_misconfigured")


class UnauthorizedError(InjectError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized")


class ConfigError(InjectError):
    """The config snapshot could not be loaded."""

    status_code = 503

    def __init__(self, message: str):
        super().__init__(message, "config_unavailable")


# ---------------------------------------------------------------------------
# Downstream
# ---------------------------------------------------------------------------

class MediaPersistenceError(InjectError):
    """Media could not be stored. Never fatal to the inject request."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "media_persistence_failed")


class DelegationError(InjectError):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message, "delegation_failed")
