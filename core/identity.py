"""Typed parsing of ARNs and the caller identity."""

from __future__ import annotations

import re
from typing import Any

from botocore.exceptions import ClientError

from core.errors import MalformedIdentityError, PolicyInstallError, client_error_code
from core.models import Arn, CallerIdentity

_ACCOUNT_RE = re.compile(r"^\d{12}$")
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9-]+$")


def parse_arn(text: str) -> Arn:
    """Parse ``arn:partition:service:region:account:resource`` into an :class:`Arn`."""
    if not isinstance(text, str) or not text.startswith("arn:"):
        raise MalformedIdentityError(f"Not an ARN: {text!r}")
    parts = text.split(":", 5)
    if len(parts) != 6:
        raise MalformedIdentityError(f"ARN must have six colon separated segments: {text!r}")
    _, partition, service, region, account, resource = parts
    if not partition or not _SEGMENT_RE.match(partition):
        raise MalformedIdentityError(f"ARN has an invalid partition: {text!r}")
    if not service or not _SEGMENT_RE.match(service):
        raise MalformedIdentityError(f"ARN has an invalid service: {text!r}")
    if region and not _SEGMENT_RE.match(region):
        raise MalformedIdentityError(f"ARN has an invalid region: {text!r}")
    if account and not _ACCOUNT_RE.match(account):
        raise MalformedIdentityError(f"ARN has an invalid account id: {text!r}")
    if not resource:
        raise MalformedIdentityError(f"ARN has an empty resource: {text!r}")
    return Arn(partition=partition, service=service, region=region, account=account, resource=resource)


def parse_identity(arn_text: str, account_id: str | None = None) -> CallerIdentity:
    """Classify a caller ARN as user, role, assumed-role or root."""
    arn = parse_arn(arn_text)
    account = account_id or arn.account
    if not _ACCOUNT_RE.match(account or ""):
        raise MalformedIdentityError(f"Caller identity has no account id: {arn_text!r}")
    if arn.account and arn.account != account:
        raise MalformedIdentityError(f"Caller ARN account {arn.account} does not match {account}")

    if arn.resource == "root":
        return CallerIdentity(account_id=account, arn=arn, principal_type="root", name="root")

    principal_type, _, remainder = arn.resource.partition("/")
    if not remainder:
        raise MalformedIdentityError(f"Caller ARN has no principal name: {arn_text!r}")

    if principal_type in {"user", "role"} and arn.service == "iam":
        name = remainder.rsplit("/", 1)[-1]
    elif principal_type == "assumed-role" and arn.service == "sts":
        name = remainder.split("/", 1)[0]
    else:
        raise MalformedIdentityError(f"Unsupported caller principal type {principal_type!r}: {arn_text!r}")

    if not name:
        raise MalformedIdentityError(f"Caller ARN has an empty principal name: {arn_text!r}")
    return CallerIdentity(account_id=account, arn=arn, principal_type=principal_type, name=name)


def current_identity(sts_client: Any) -> CallerIdentity:
    try:
        response = sts_client.get_caller_identity()
    except ClientError as exc:
        raise PolicyInstallError(
            f"Unable to resolve the caller identity: {exc}",
            state={"code": client_error_code(exc)},
        ) from exc
    return parse_identity(response["Arn"], response.get("Account"))


__all__ = ["parse_arn", "parse_identity", "current_identity"]
