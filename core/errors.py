"""Error taxonomy for the deployment core.

Every error is fatal to the current install/uninstall invocation. Each carries
a ``kind`` label and the last backend state that was observed, so the CLI can
report enough detail for manual remediation.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping


class QuokkaError(Exception):
    """Base class for all deployment failures."""

    kind = "QuokkaError"

    def __init__(self, message: str, *, state: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.state: dict[str, Any] = dict(state or {})

    def describe(self) -> dict[str, Any]:
        return {"kind": self.kind, "message": str(self), "state": self.state}


class MalformedPolicyError(QuokkaError):
    kind = "MalformedPolicyError"


class MalformedIdentityError(QuokkaError):
    kind = "MalformedIdentityError"


class PolicyInstallError(QuokkaError):
    kind = "PolicyInstallError"


class PolicyIncompleteError(QuokkaError):
    kind = "PolicyIncompleteError"

    def __init__(self, missing: Iterable[str], *, state: Mapping[str, Any] | None = None) -> None:
        self.missing = sorted(missing)
        super().__init__(
            f"Installed policy is missing {len(self.missing)} action(s): {', '.join(self.missing)}",
            state={**(state or {}), "missing": self.missing},
        )


class StagingUnavailableError(QuokkaError):
    kind = "StagingUnavailableError"


class PackagingError(QuokkaError):
    kind = "PackagingError"


class ValidationError(QuokkaError):
    kind = "ValidationError"


class BackendProbeError(QuokkaError):
    """A probe failed for a reason other than a definitive "not found"."""

    kind = "BackendProbeError"


class StackOperationFailedError(QuokkaError):
    kind = "StackOperationFailedError"

    def __init__(
        self,
        message: str,
        *,
        status: str | None = None,
        outputs: Mapping[str, str] | None = None,
        state: Mapping[str, Any] | None = None,
    ) -> None:
        self.status = status
        self.outputs = dict(outputs or {})
        super().__init__(message, state={**(state or {}), "status": status, "outputs": self.outputs})


class ProvisioningTimeoutError(QuokkaError):
    kind = "ProvisioningTimeoutError"

    def __init__(self, message: str, *, last_status: str | None = None, state: Mapping[str, Any] | None = None) -> None:
        self.last_status = last_status
        super().__init__(message, state={**(state or {}), "lastStatus": last_status})


class OperationCancelledError(QuokkaError):
    kind = "OperationCancelledError"


def client_error_code(exc: Exception) -> str:
    """Return the AWS error code of a botocore ``ClientError`` (empty when absent)."""
    response = getattr(exc, "response", None) or {}
    return str(response.get("Error", {}).get("Code", ""))


def client_error_message(exc: Exception) -> str:
    response = getattr(exc, "response", None) or {}
    return str(response.get("Error", {}).get("Message", "")) or str(exc)


__all__ = [
    "QuokkaError",
    "MalformedPolicyError",
    "MalformedIdentityError",
    "PolicyInstallError",
    "PolicyIncompleteError",
    "StagingUnavailableError",
    "PackagingError",
    "ValidationError",
    "BackendProbeError",
    "StackOperationFailedError",
    "ProvisioningTimeoutError",
    "OperationCancelledError",
    "client_error_code",
    "client_error_message",
]
