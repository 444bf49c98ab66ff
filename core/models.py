"""Data models shared across the deployment core."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, BinaryIO, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.errors import MalformedPolicyError


class PolicyStatement(BaseModel):
    """IAM policy statement; ``resource`` stays ``None`` until a scope is synthesized.

    Unknown statement keys are rejected rather than dropped, so nothing the
    template declares can silently disappear from the installed document.
    """

    sid: str | None = Field(default=None, alias="Sid")
    effect: str = Field(default="Allow", alias="Effect")
    principal: Any | None = Field(default=None, alias="Principal")
    not_principal: Any | None = Field(default=None, alias="NotPrincipal")
    actions: list[str] = Field(default_factory=list, alias="Action")
    not_actions: list[str] | None = Field(default=None, alias="NotAction")
    resource: str | list[str] | None = Field(default=None, alias="Resource")
    not_resource: str | list[str] | None = Field(default=None, alias="NotResource")
    conditions: dict[str, Any] | None = Field(default=None, alias="Condition")

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    @field_validator("actions", "not_actions", mode="before")
    @classmethod
    def _coerce_actions(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @property
    def has_resource(self) -> bool:
        """True when the statement already declares a scope via ``Resource`` or ``NotResource``."""
        return _declared(self.resource) or _declared(self.not_resource)


def _declared(scope: str | list[str] | None) -> bool:
    if scope is None:
        return False
    if isinstance(scope, list):
        return bool(scope)
    return bool(scope.strip())


class PolicyDoc(BaseModel):
    """Access policy document composed of IAM statements."""

    version: str = Field(default="2012-10-17", alias="Version")
    statements: list[PolicyStatement] = Field(default_factory=list, alias="Statement")

    model_config = ConfigDict(populate_by_name=True)

    def services(self) -> list[str]:
        """Return unique service namespaces referenced in the policy."""
        services: set[str] = set()
        for statement in self.statements:
            for action in statement.actions:
                services.add(action.split(":", 1)[0])
        return sorted(services)

    def actions(self, effect: str | None = None) -> set[str]:
        """Actions named by the policy, optionally only those of one ``Effect``."""
        return {
            action
            for statement in self.statements
            if effect is None or statement.effect == effect
            for action in statement.actions
        }

    def to_document(self) -> dict[str, Any]:
        document = self.model_dump(by_alias=True, exclude_none=True)
        for statement in document.get("Statement", []):
            # IAM rejects a statement carrying both Action and NotAction.
            if "NotAction" in statement and not statement.get("Action"):
                statement.pop("Action", None)
        return document

    def to_json(self) -> str:
        return json.dumps(self.to_document(), sort_keys=True)

    @classmethod
    def load(cls, path: Path) -> "PolicyDoc":
        try:
            return cls.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise MalformedPolicyError(f"Invalid policy template {path}: {exc}", state={"path": str(path)}) from exc


class Arn(BaseModel):
    """Structured Amazon Resource Name, used both for identities and resource scopes."""

    partition: str = "aws"
    service: str
    region: str = ""
    account: str = ""
    resource: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"arn:{self.partition}:{self.service}:{self.region}:{self.account}:{self.resource}"


class CallerIdentity(BaseModel):
    """Identity the deployer is running as."""

    account_id: str
    arn: Arn
    principal_type: str
    name: str


class StackDescriptor(BaseModel):
    """Backend view of the provisioned stack."""

    name: str
    stack_id: str
    status: str
    outputs: dict[str, str] = Field(default_factory=dict)
    output_descriptions: dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_response(cls, stack: dict[str, Any]) -> "StackDescriptor":
        outputs: dict[str, str] = {}
        descriptions: dict[str, str] = {}
        for output in stack.get("Outputs", []) or []:
            key = output["OutputKey"]
            outputs[key] = str(output.get("OutputValue", ""))
            if output.get("Description"):
                descriptions[key] = output["Description"]
        return cls(
            name=stack.get("StackName", ""),
            stack_id=stack.get("StackId", ""),
            status=stack.get("StackStatus", ""),
            outputs=outputs,
            output_descriptions=descriptions,
            created_at=stack.get("CreationTime"),
        )


class InstallationRecord(BaseModel):
    """Snapshot persisted after a successful install."""

    name: str
    stack_id: str = Field(alias="id")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    outputs: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_descriptor(cls, descriptor: StackDescriptor) -> "InstallationRecord":
        return cls(
            name=descriptor.name,
            stack_id=descriptor.stack_id,
            created_at=descriptor.created_at,
            outputs=dict(descriptor.outputs),
        )


@dataclass(slots=True)
class DeploymentArtifact:
    """Packaged archive waiting to be staged."""

    local_path: Path
    staging_key: str

    def open(self) -> BinaryIO:
        return self.local_path.open("rb")

    def discard(self) -> None:
        self.local_path.unlink(missing_ok=True)


__all__ = [
    "PolicyStatement",
    "PolicyDoc",
    "Arn",
    "CallerIdentity",
    "StackDescriptor",
    "InstallationRecord",
    "DeploymentArtifact",
]
