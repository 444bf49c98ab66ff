"""Policy installer/verifier tests."""

from __future__ import annotations

import json
from urllib.parse import quote

import pytest

from core.errors import PolicyIncompleteError, PolicyInstallError, ProvisioningTimeoutError
from core.identity import parse_identity
from core.models import PolicyDoc, PolicyStatement
from core.policy.installer import PolicyInstaller, granted_actions, missing_actions
from core.polling import Poller

from tests.fakes import USER_ARN, FakeIam, client_error

POLICY = PolicyDoc(
    statements=[
        PolicyStatement(actions=["logs:CreateLogGroup", "s3:ListBucket"], resource="*"),
    ]
)


def _installer(iam: FakeIam, timeout: float = 30.0) -> PolicyInstaller:
    return PolicyInstaller(iam, "QuokkaDeployer", Poller(interval=0, max_interval=0, timeout=timeout))


def test_install_puts_user_policy_and_verifies():
    iam = FakeIam()
    _installer(iam).install(POLICY, parse_identity(USER_ARN))
    assert iam.put_calls[0]["kind"] == "user"
    assert iam.put_calls[0]["name"] == "deployer"
    assert iam.put_calls[0]["policy"] == "QuokkaDeployer"
    assert iam.put_calls[0]["document"]["Statement"][0]["Resource"] == "*"


def test_install_retries_until_policy_is_visible():
    iam = FakeIam()
    iam.invisible_reads = 3
    _installer(iam).install(POLICY, parse_identity(USER_ARN))
    assert iam.invisible_reads == 0


def test_install_on_assumed_role_uses_role_policy():
    iam = FakeIam()
    identity = parse_identity("arn:aws:sts::123456789012:assumed-role/DeployRole/session")
    _installer(iam).install(POLICY, identity)
    assert iam.put_calls[0]["kind"] == "role"
    assert iam.put_calls[0]["name"] == "DeployRole"


def test_install_reports_missing_actions_after_stable_read():
    iam = FakeIam()
    iam.drop_actions = {"s3:ListBucket"}
    with pytest.raises(PolicyIncompleteError) as excinfo:
        _installer(iam).install(POLICY, parse_identity(USER_ARN))
    assert excinfo.value.missing == ["s3:ListBucket"]


def test_install_rejected_write_raises():
    iam = FakeIam()
    iam.put_error = client_error("MalformedPolicyDocument", "bad policy")
    with pytest.raises(PolicyInstallError) as excinfo:
        _installer(iam).install(POLICY, parse_identity(USER_ARN))
    assert excinfo.value.state["code"] == "MalformedPolicyDocument"


def test_install_refuses_root_identity():
    iam = FakeIam()
    with pytest.raises(PolicyInstallError):
        _installer(iam).install(POLICY, parse_identity("arn:aws:iam::123456789012:root"))
    assert iam.put_calls == []


def test_unexpected_read_error_is_fatal():
    iam = FakeIam()
    iam.get_error = client_error("AccessDenied", "denied")
    with pytest.raises(PolicyInstallError):
        _installer(iam).install(POLICY, parse_identity(USER_ARN))


def test_policy_that_never_appears_times_out():
    iam = FakeIam()
    iam.invisible_reads = 10**9
    installer = PolicyInstaller(iam, "QuokkaDeployer", Poller(interval=0, max_interval=0, timeout=0.05))
    with pytest.raises(ProvisioningTimeoutError) as excinfo:
        installer.install(POLICY, parse_identity(USER_ARN))
    assert excinfo.value.last_status == "NOT_VISIBLE"


def test_fetch_decodes_url_encoded_documents():
    class EncodedIam(FakeIam):
        def get_user_policy(self, UserName, PolicyName):
            document = json.dumps({"Statement": [{"Effect": "Allow", "Action": "sns:Publish"}]})
            return {"PolicyDocument": quote(document)}

    stored = _installer(EncodedIam()).fetch(parse_identity(USER_ARN))
    assert granted_actions(stored) == {"sns:Publish"}


def test_wildcard_grants_cover_requested_actions():
    assert missing_actions({"s3:GetObject", "logs:CreateLogGroup"}, {"s3:*"}) == {"logs:CreateLogGroup"}
    assert missing_actions({"S3:GetObject"}, {"s3:getobject"}) == set()
    assert missing_actions({"sns:Publish"}, {"*"}) == set()


def test_granted_actions_ignore_deny_statements():
    document = {
        "Statement": [
            {"Effect": "Allow", "Action": ["s3:GetObject"]},
            {"Effect": "Deny", "Action": ["s3:DeleteObject"]},
        ]
    }
    assert granted_actions(document) == {"s3:GetObject"}


def test_install_verifies_allow_and_deny_statements_separately():
    iam = FakeIam()
    policy = PolicyDoc(
        statements=[
            PolicyStatement(effect="Allow", actions=["s3:GetObject"], resource="*"),
            PolicyStatement(effect="Deny", actions=["s3:DeleteBucket"], resource="*"),
        ]
    )
    _installer(iam).install(policy, parse_identity(USER_ARN))
    effects = [statement["Effect"] for statement in iam.put_calls[0]["document"]["Statement"]]
    assert effects == ["Allow", "Deny"]


def test_missing_deny_action_is_reported():
    iam = FakeIam()
    iam.drop_actions = {"s3:DeleteBucket"}
    policy = PolicyDoc(
        statements=[
            PolicyStatement(effect="Allow", actions=["s3:GetObject"], resource="*"),
            PolicyStatement(effect="Deny", actions=["s3:DeleteBucket"], resource="*"),
        ]
    )
    with pytest.raises(PolicyIncompleteError) as excinfo:
        _installer(iam).install(policy, parse_identity(USER_ARN))
    assert excinfo.value.missing == ["s3:DeleteBucket"]


def test_deny_grant_does_not_satisfy_allow_request():
    document = {"Statement": [{"Effect": "Deny", "Action": ["s3:GetObject"]}]}
    assert missing_actions({"s3:GetObject"}, granted_actions(document, "Allow")) == {"s3:GetObject"}
    assert missing_actions({"s3:GetObject"}, granted_actions(document, "Deny")) == set()
