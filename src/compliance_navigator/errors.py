"""Error taxonomy and structured error/success envelopes."""

from typing import Any, Optional


def err(
    code: str,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a structured error envelope."""
    return {
        "ok": False,
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
    }


def ok(result: dict[str, Any]) -> dict[str, Any]:
    """Build a structured success envelope."""
    return {"ok": True, "result": result}


class ComplianceError(Exception):
    """Base class for errors reported to tool callers as structured payloads."""

    code = "E_INTERNAL"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_envelope(self) -> dict[str, Any]:
        return err(self.code, self.message, self.details)


class ValidationError(ComplianceError):
    """Input failed schema or path validation."""

    code = "E_VALIDATION"


class PathEscapeError(ValidationError):
    """A resolved write or read target left its confinement root."""

    code = "E_PATH_ESCAPE"


class CommandNotAllowlisted(ComplianceError):
    """A subprocess command did not match any allowlist rule."""

    code = "E_COMMAND_NOT_ALLOWLISTED"


class ScannerUnavailable(ComplianceError):
    """A scanner binary is missing, failed to start, or timed out."""

    code = "E_SCANNER_UNAVAILABLE"


class RunNotFound(ComplianceError):
    code = "E_RUN_NOT_FOUND"


class PacketNotFound(ComplianceError):
    code = "E_PACKET_NOT_FOUND"


class PlanNotFound(ComplianceError):
    code = "E_PLAN_NOT_FOUND"


class ApprovalRequired(ComplianceError):
    """Execution was requested for a plan that has no approval artifact."""

    code = "E_APPROVAL_REQUIRED"


class PlanHashMismatch(ComplianceError):
    """The approved plan hash does not match the plan as it would execute now."""

    code = "E_PLAN_HASH_MISMATCH"


class PlanAlreadyExecuted(ComplianceError):
    code = "E_PLAN_ALREADY_EXECUTED"


class RateLimited(ComplianceError):
    """The issue tracker kept rate limiting after all retries."""

    code = "E_RATE_LIMITED"

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class TrackerError(ComplianceError):
    """The issue tracker rejected a request or could not be reached."""

    code = "E_TRACKER"


class ConfigError(ComplianceError):
    code = "E_CONFIG"


class ExternalFeature(ComplianceError):
    """The requested tool is provided by an external component."""

    code = "E_EXTERNAL"
