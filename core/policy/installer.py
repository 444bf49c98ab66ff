"""Install the synthesized policy on the caller and wait until IAM reflects it."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Iterable, Optional
from urllib.parse import unquote

from botocore.exceptions import ClientError

from core.errors import PolicyIncompleteError, PolicyInstallError, client_error_code
from core.models import CallerIdentity, PolicyDoc
from core.polling import Poller

logger = logging.getLogger("quokka.policy")


@dataclass(slots=True)
class _Observation:
    document: Optional[str]
    missing: frozenset[str]
    stable: bool

    @property
    def status(self) -> str:
        if self.document is None:
            return "NOT_VISIBLE"
        if self.missing:
            return f"MISSING_{len(self.missing)}_ACTIONS"
        return "COMPLETE"


def granted_actions(document: dict[str, Any], effect: str = "Allow") -> set[str]:
    """Collect the actions a stored policy document lists under ``effect``."""
    statements = document.get("Statement", [])
    if isinstance(statements, dict):
        statements = [statements]
    granted: set[str] = set()
    for statement in statements:
        if statement.get("Effect", "Allow") != effect:
            continue
        actions = statement.get("Action", [])
        if isinstance(actions, str):
            actions = [actions]
        granted.update(actions)
    return granted


def missing_actions(requested: Iterable[str], granted: Iterable[str]) -> set[str]:
    """Return requested actions not covered by any grant; grants may use ``*`` wildcards."""
    patterns = [pattern.lower() for pattern in granted]
    return {action for action in requested if not any(fnmatchcase(action.lower(), pattern) for pattern in patterns)}


def _unmatched(allowed: Iterable[str], denied: Iterable[str], stored: dict[str, Any]) -> frozenset[str]:
    """Requested actions the stored document does not carry under the same effect."""
    return frozenset(
        missing_actions(allowed, granted_actions(stored, "Allow"))
        | missing_actions(denied, granted_actions(stored, "Deny"))
    )


def _decode_document(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    text = str(raw)
    if not text.lstrip().startswith("{"):
        text = unquote(text)
    return json.loads(text)


class PolicyInstaller:
    """Put an inline policy under a fixed name and verify convergence."""

    def __init__(self, iam_client: Any, policy_name: str, poller: Poller) -> None:
        self._iam = iam_client
        self.policy_name = policy_name
        self.poller = poller

    def install(self, policy: PolicyDoc, identity: CallerIdentity) -> None:
        document = policy.to_json()
        logger.info("Installing policy %s on %s %s", self.policy_name, identity.principal_type, identity.name)
        try:
            if identity.principal_type == "user":
                self._iam.put_user_policy(UserName=identity.name, PolicyName=self.policy_name, PolicyDocument=document)
            elif identity.principal_type in {"role", "assumed-role"}:
                self._iam.put_role_policy(RoleName=identity.name, PolicyName=self.policy_name, PolicyDocument=document)
            else:
                raise PolicyInstallError(
                    f"Cannot attach an inline policy to a {identity.principal_type} identity",
                    state={"identity": str(identity.arn)},
                )
        except ClientError as exc:
            raise PolicyInstallError(
                f"Backend rejected policy {self.policy_name}: {exc}",
                state={"code": client_error_code(exc), "identity": str(identity.arn)},
            ) from exc

        self.verify(policy, identity)

    def verify(self, policy: PolicyDoc, identity: CallerIdentity) -> None:
        requested = frozenset(policy.actions())
        allowed = policy.actions("Allow")
        denied = policy.actions("Deny")
        previous: list[Optional[str]] = [None]

        def probe() -> _Observation:
            stored = self.fetch(identity)
            if stored is None:
                previous[0] = None
                return _Observation(document=None, missing=requested, stable=False)
            rendered = json.dumps(stored, sort_keys=True)
            stable = rendered == previous[0]
            previous[0] = rendered
            return _Observation(document=rendered, missing=_unmatched(allowed, denied, stored), stable=stable)

        observation = self.poller.wait(
            probe,
            lambda obs: obs.document is not None and (not obs.missing or obs.stable),
            label=f"Policy {self.policy_name} verification",
            status_of=lambda obs: obs.status,
        )
        if observation.missing:
            raise PolicyIncompleteError(observation.missing, state={"policy": self.policy_name})
        logger.info("Policy %s verified with %d action(s)", self.policy_name, len(requested))

    def fetch(self, identity: CallerIdentity) -> Optional[dict[str, Any]]:
        """Return the stored policy document, or ``None`` while it is not visible yet."""
        try:
            if identity.principal_type == "user":
                response = self._iam.get_user_policy(UserName=identity.name, PolicyName=self.policy_name)
            else:
                response = self._iam.get_role_policy(RoleName=identity.name, PolicyName=self.policy_name)
        except ClientError as exc:
            if client_error_code(exc) == "NoSuchEntity":
                return None
            raise PolicyInstallError(
                f"Unable to read back policy {self.policy_name}: {exc}",
                state={"code": client_error_code(exc)},
            ) from exc
        return _decode_document(response["PolicyDocument"])


__all__ = ["PolicyInstaller", "granted_actions", "missing_actions"]
