"""Per-invocation deployment settings."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from core.constants import ACCOUNTLESS_SERVICES, REGIONLESS_SERVICES, STACK_CAPABILITIES

DEFAULTS: dict[str, Any] = {
    "stack_name": "Quokka",
    "region": "us-east-1",
    "partition": "aws",
    "code_dir": "lambda",
    "bucket_name_base": "quokka-data",
    "template_file": "quokka.cform",
    "lambda_file": "quokka-lambda.zip",
    "deployments_prefix": "deployments",
    "policy_name": "QuokkaDeployer",
    "policy_template": "quokka-policy.json",
    "result_file": "quokka-stack.json",
    "poll_interval": 5.0,
    "max_poll_interval": 30.0,
    "poll_backoff": 1.5,
    "stack_timeout": 1800.0,
    "policy_timeout": 120.0,
}


@dataclass(slots=True, frozen=True)
class Settings:
    stack_name: str = DEFAULTS["stack_name"]
    region: str = DEFAULTS["region"]
    partition: str = DEFAULTS["partition"]
    code_dir: Path = Path(DEFAULTS["code_dir"])
    bucket_name_base: str = DEFAULTS["bucket_name_base"]
    template_file: Path = Path(DEFAULTS["template_file"])
    lambda_file: str = DEFAULTS["lambda_file"]
    deployments_prefix: str = DEFAULTS["deployments_prefix"]
    policy_name: str = DEFAULTS["policy_name"]
    policy_template: Path = Path(DEFAULTS["policy_template"])
    result_file: Path = Path(DEFAULTS["result_file"])
    poll_interval: float = DEFAULTS["poll_interval"]
    max_poll_interval: float = DEFAULTS["max_poll_interval"]
    poll_backoff: float = DEFAULTS["poll_backoff"]
    stack_timeout: float = DEFAULTS["stack_timeout"]
    policy_timeout: float = DEFAULTS["policy_timeout"]
    capabilities: tuple[str, ...] = tuple(STACK_CAPABILITIES)
    regionless_services: frozenset[str] = field(default=REGIONLESS_SERVICES)
    accountless_services: frozenset[str] = field(default=ACCOUNTLESS_SERVICES)

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "Settings":
        def get(key: str) -> Any:
            return data.get(key, DEFAULTS[key])

        return cls(
            stack_name=str(get("stack_name")),
            region=str(get("region")),
            partition=str(get("partition")),
            code_dir=Path(get("code_dir")),
            bucket_name_base=str(get("bucket_name_base")),
            template_file=Path(get("template_file")),
            lambda_file=str(get("lambda_file")),
            deployments_prefix=str(get("deployments_prefix")).strip("/"),
            policy_name=str(get("policy_name")),
            policy_template=Path(get("policy_template")),
            result_file=Path(get("result_file")),
            poll_interval=float(get("poll_interval")),
            max_poll_interval=float(get("max_poll_interval")),
            poll_backoff=float(get("poll_backoff")),
            stack_timeout=float(get("stack_timeout")),
            policy_timeout=float(get("policy_timeout")),
            capabilities=tuple(data.get("capabilities") or STACK_CAPABILITIES),
            regionless_services=frozenset(data.get("regionless_services") or REGIONLESS_SERVICES),
            accountless_services=frozenset(data.get("accountless_services") or ACCOUNTLESS_SERVICES),
        )

    def merge_cli(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-``None`` override applied."""
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def bucket_name(self, uid: str) -> str:
        return f"tmp-{self.bucket_name_base}-{uid}".lower()

    def staging_key(self, file_name: str) -> str:
        return f"{self.deployments_prefix}/{file_name}"


__all__ = ["DEFAULTS", "Settings"]
