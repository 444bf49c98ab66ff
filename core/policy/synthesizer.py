"""Fill in resource scopes for policy statements that declare none."""

from __future__ import annotations

from typing import Iterable

from core.constants import ACCOUNTLESS_SERVICES, REGIONLESS_SERVICES, WILDCARD_RESOURCE
from core.errors import MalformedPolicyError
from core.models import Arn, PolicyDoc, PolicyStatement


class PolicySynthesizer:
    """Derive a wildcard ARN per service namespace for every unscoped statement."""

    def __init__(
        self,
        account_id: str,
        region: str,
        *,
        partition: str = "aws",
        regionless_services: Iterable[str] = REGIONLESS_SERVICES,
        accountless_services: Iterable[str] = ACCOUNTLESS_SERVICES,
    ) -> None:
        self.account_id = account_id
        self.region = region
        self.partition = partition
        self.regionless_services = frozenset(regionless_services)
        self.accountless_services = frozenset(accountless_services)

    def synthesize(self, template: PolicyDoc) -> PolicyDoc:
        statements = [self._scope_statement(index, statement) for index, statement in enumerate(template.statements)]
        return PolicyDoc(version=template.version, statements=statements)

    # ------------------------------------------------------------------
    def _scope_statement(self, index: int, statement: PolicyStatement) -> PolicyStatement:
        if statement.has_resource:
            return statement.model_copy(deep=True)

        scopes: list[str] = []
        for service in self._services(index, statement):
            scope = str(self.scope_for(service))
            if scope not in scopes:
                scopes.append(scope)

        resource: str | list[str] = scopes[0] if len(scopes) == 1 else scopes
        return statement.model_copy(update={"resource": resource}, deep=True)

    def scope_for(self, service: str) -> Arn:
        return Arn(
            partition=self.partition,
            service=service,
            region="" if service in self.regionless_services else self.region,
            account="" if service in self.accountless_services else self.account_id,
            resource=WILDCARD_RESOURCE,
        )

    @staticmethod
    def _services(index: int, statement: PolicyStatement) -> list[str]:
        label = statement.sid or f"#{index}"
        if not statement.actions:
            raise MalformedPolicyError(f"Statement {label} has no actions", state={"statement": label})

        services: list[str] = []
        for action in statement.actions:
            service, sep, operation = action.partition(":")
            if not sep or not service or not operation:
                raise MalformedPolicyError(
                    f"Statement {label} has an action without a service prefix: {action!r}",
                    state={"statement": label, "action": action},
                )
            if service not in services:
                services.append(service)
        return services


__all__ = ["PolicySynthesizer"]
