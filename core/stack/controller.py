"""CloudFormation stack lifecycle: describe, validate, create, delete and wait."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from botocore.exceptions import ClientError

from core.constants import DELETE_COMPLETE, DELETE_IN_PROGRESS
from core.errors import (
    BackendProbeError,
    StackOperationFailedError,
    ValidationError,
    client_error_code,
    client_error_message,
)
from core.models import StackDescriptor
from core.polling import Poller

logger = logging.getLogger("quokka.stack")

StatusCallback = Callable[[str], None]


def _is_missing_stack(exc: ClientError) -> bool:
    return client_error_code(exc) == "ValidationError" and "does not exist" in client_error_message(exc)


class StackController:
    """Drive one named stack through create or delete and poll for a terminal status."""

    def __init__(self, cfn_client: Any, poller: Poller, on_status: Optional[StatusCallback] = None) -> None:
        self._cfn = cfn_client
        self.poller = poller
        self.on_status = on_status

    def describe(self, name: str) -> Optional[StackDescriptor]:
        """Return the stack, ``None`` when the backend says it does not exist."""
        try:
            response = self._cfn.describe_stacks(StackName=name)
        except ClientError as exc:
            if _is_missing_stack(exc):
                return None
            raise BackendProbeError(
                f"Unable to describe stack {name}: {exc}",
                state={"stack": name, "code": client_error_code(exc)},
            ) from exc
        stacks = response.get("Stacks", [])
        if not stacks:
            return None
        return StackDescriptor.from_response(stacks[0])

    def find_active(self, name: str) -> Optional[StackDescriptor]:
        """Like :meth:`describe`, but a fully deleted stack counts as absent."""
        descriptor = self.describe(name)
        if descriptor is None or descriptor.status == DELETE_COMPLETE:
            return None
        return descriptor

    def validate_template(self, template_url: str) -> None:
        try:
            self._cfn.validate_template(TemplateURL=template_url)
        except ClientError as exc:
            raise ValidationError(
                f"Template at {template_url} failed validation: {client_error_message(exc)}",
                state={"templateUrl": template_url, "code": client_error_code(exc)},
            ) from exc

    def create(
        self,
        name: str,
        template_url: str,
        parameters: Sequence[tuple[str, str]],
        capabilities: Sequence[str],
    ) -> str:
        try:
            response = self._cfn.create_stack(
                StackName=name,
                TemplateURL=template_url,
                Parameters=[{"ParameterKey": key, "ParameterValue": value} for key, value in parameters],
                Capabilities=list(capabilities),
            )
        except ClientError as exc:
            raise StackOperationFailedError(
                f"Backend rejected creation of stack {name}: {client_error_message(exc)}",
                state={"stack": name, "code": client_error_code(exc)},
            ) from exc
        stack_id = response["StackId"]
        logger.info("Requested stack %s (%s)", name, stack_id)
        return stack_id

    def delete(self, name: str) -> None:
        try:
            self._cfn.delete_stack(StackName=name)
        except ClientError as exc:
            raise StackOperationFailedError(
                f"Backend rejected deletion of stack {name}: {client_error_message(exc)}",
                state={"stack": name, "code": client_error_code(exc)},
            ) from exc
        logger.info("Requested deletion of stack %s", name)

    def wait_for_terminal(self, identifier: str, in_progress: str) -> StackDescriptor:
        last_seen: list[Optional[StackDescriptor]] = [None]

        def probe() -> StackDescriptor:
            descriptor = self.describe(identifier)
            if descriptor is None:
                if in_progress != DELETE_IN_PROGRESS:
                    previous = last_seen[0]
                    raise StackOperationFailedError(
                        f"Stack {identifier} disappeared while {in_progress}",
                        status=previous.status if previous else None,
                        outputs=previous.outputs if previous else None,
                    )
                previous = last_seen[0]
                descriptor = StackDescriptor(
                    name=previous.name if previous else identifier,
                    stack_id=previous.stack_id if previous else identifier,
                    status=DELETE_COMPLETE,
                    outputs=previous.outputs if previous else {},
                    created_at=previous.created_at if previous else None,
                )
            last_seen[0] = descriptor
            if self.on_status is not None:
                self.on_status(descriptor.status)
            return descriptor

        descriptor = self.poller.wait(
            probe,
            lambda current: current.status != in_progress,
            label=f"Stack {identifier}",
            status_of=lambda current: current.status,
        )
        logger.info("Stack %s reached %s", descriptor.name or identifier, descriptor.status)
        return descriptor

    @staticmethod
    def require_status(descriptor: StackDescriptor, expected: str) -> StackDescriptor:
        if descriptor.status != expected:
            raise StackOperationFailedError(
                f"Stack {descriptor.name} ended in {descriptor.status}, expected {expected}",
                status=descriptor.status,
                outputs=descriptor.outputs,
                state={"stackId": descriptor.stack_id},
            )
        return descriptor


def template_parameters(parameters: Mapping[str, str]) -> list[tuple[str, str]]:
    """Freeze a parameter mapping into the ordered pairs passed to the backend."""
    return [(key, str(value)) for key, value in parameters.items()]


__all__ = ["StackController", "StatusCallback", "template_parameters"]
