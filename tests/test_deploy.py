"""End-to-end install/uninstall flows against the in-memory backend."""

from __future__ import annotations

import json

import pytest

from core.deploy import install, uninstall
from core.errors import (
    PackagingError,
    PolicyIncompleteError,
    StackOperationFailedError,
    StagingUnavailableError,
    ValidationError,
)

from tests.fakes import ACCOUNT_ID, FakeCloudFormation, FakePackager, client_error

BUCKET = "tmp-quokka-data-abcde1"


def test_install_provisions_stack_and_writes_record(context, aws, settings, policy_template):
    statuses: list[str] = []
    context.on_status = statuses.append

    outcome = install(context, "a@b.com", "abcde1", policy_template)

    assert outcome.created is True
    assert outcome.descriptor.status == "CREATE_COMPLETE"
    assert statuses[-1] == "CREATE_COMPLETE"

    cfn = aws["cloudformation"]
    assert cfn.validated == [f"https://s3.amazonaws.com/{BUCKET}/deployments/quokka.cform"]
    call = cfn.create_calls[0]
    assert call["StackName"] == "Quokka"
    assert call["Parameters"] == [
        {"ParameterKey": "Email", "ParameterValue": "a@b.com"},
        {"ParameterKey": "UID", "ParameterValue": "abcde1"},
        {"ParameterKey": "CodeBucket", "ParameterValue": BUCKET},
        {"ParameterKey": "CodeKey", "ParameterValue": "deployments/quokka-lambda.zip"},
    ]
    assert call["Capabilities"] == ["CAPABILITY_IAM"]

    s3 = aws["s3"]
    assert BUCKET in s3.buckets
    assert (BUCKET, "deployments/quokka-lambda.zip") in s3.objects
    assert (BUCKET, "deployments/quokka.cform") in s3.objects

    record = json.loads(settings.result_file.read_text(encoding="utf-8"))
    assert record["name"] == "Quokka"
    assert record["id"] == outcome.descriptor.stack_id
    assert record["outputs"]["ApiUrl"] == "https://api.example.com/prod"
    assert outcome.record_path == settings.result_file


def test_install_scopes_policy_to_caller_account(context, aws, policy_template):
    install(context, "a@b.com", "abcde1", policy_template)
    statement = aws["iam"].put_calls[0]["document"]["Statement"][0]
    assert statement["Resource"] == [f"arn:aws:logs:us-east-1:{ACCOUNT_ID}:*", "arn:aws:s3:::*"]


def test_install_twice_creates_once(context, aws, settings, policy_template):
    first = install(context, "a@b.com", "abcde1", policy_template)
    settings.result_file.unlink()

    second = install(context, "a@b.com", "abcde1", policy_template)

    assert second.created is False
    assert second.record_path is None
    assert second.descriptor.outputs == first.descriptor.outputs
    assert len(aws["cloudformation"].create_calls) == 1
    assert not settings.result_file.exists()


def test_install_normalises_uid_case(context, aws, policy_template):
    install(context, "a@b.com", "ABCDE1", policy_template)
    assert BUCKET in aws["s3"].buckets


@pytest.mark.parametrize(
    ("email", "uid"),
    [("not-an-email", "abcde1"), ("", "abcde1"), ("a@b.com", "bad_uid!"), ("a@b.com", "-leading")],
)
def test_install_rejects_invalid_input(context, aws, policy_template, email, uid):
    with pytest.raises(ValidationError):
        install(context, email, uid, policy_template)
    assert aws["iam"].put_calls == []


def test_failed_creation_surfaces_status_and_skips_record(settings, aws, context, policy_template):
    aws["cloudformation"].create_script = ["CREATE_IN_PROGRESS", "ROLLBACK_IN_PROGRESS", "ROLLBACK_COMPLETE"]
    with pytest.raises(StackOperationFailedError) as excinfo:
        install(context, "a@b.com", "abcde1", policy_template)
    assert excinfo.value.status == "ROLLBACK_IN_PROGRESS"
    assert not settings.result_file.exists()


def test_validation_failure_stops_before_create(context, aws, policy_template):
    aws["cloudformation"].validation_error = client_error("ValidationError", "Template format error")
    with pytest.raises(ValidationError):
        install(context, "a@b.com", "abcde1", policy_template)
    assert aws["cloudformation"].create_calls == []


def test_missing_template_file_fails_before_staging(context, aws, settings, policy_template):
    settings.template_file.unlink()
    with pytest.raises(ValidationError):
        install(context, "a@b.com", "abcde1", policy_template)
    assert aws["s3"].created == []


def test_partial_upload_fails_install(context, aws, policy_template):
    aws["s3"].fail_keys = {"deployments/quokka-lambda.zip"}
    with pytest.raises(StagingUnavailableError):
        install(context, "a@b.com", "abcde1", policy_template)
    assert aws["cloudformation"].create_calls == []


def test_packaging_failure_fails_install(context, aws, policy_template):
    context.packager = FakePackager(fail=True)
    with pytest.raises(PackagingError):
        install(context, "a@b.com", "abcde1", policy_template)
    assert aws["s3"].objects == {}


def test_incomplete_policy_stops_before_stack_work(context, aws, policy_template):
    aws["iam"].drop_actions = {"s3:ListBucket"}
    with pytest.raises(PolicyIncompleteError):
        install(context, "a@b.com", "abcde1", policy_template)
    assert aws["s3"].created == []
    assert aws["cloudformation"].create_calls == []


def test_uninstall_without_stack_is_a_no_op(context, aws):
    outcome = uninstall(context)
    assert outcome.deleted is False
    assert aws["cloudformation"].delete_calls == []


def test_uninstall_deletes_existing_stack(context, aws):
    stack = aws["cloudformation"].add_stack("Quokka")
    outcome = uninstall(context)
    assert outcome.deleted is True
    assert outcome.descriptor.status == "DELETE_COMPLETE"
    assert outcome.descriptor.stack_id == stack["StackId"]
    assert aws["cloudformation"].delete_calls == ["Quokka"]
    assert uninstall(context).deleted is False


def test_uninstall_reports_failed_deletion(settings, aws, context):
    aws["cloudformation"] = FakeCloudFormation(delete_script=["DELETE_IN_PROGRESS", "DELETE_FAILED"])
    context.cloudformation = aws["cloudformation"]
    aws["cloudformation"].add_stack("Quokka")
    with pytest.raises(StackOperationFailedError) as excinfo:
        uninstall(context)
    assert excinfo.value.status == "DELETE_FAILED"


def test_install_after_uninstall_creates_again(context, aws, policy_template):
    install(context, "a@b.com", "abcde1", policy_template)
    uninstall(context)
    outcome = install(context, "a@b.com", "abcde1", policy_template)
    assert outcome.created is True
    assert len(aws["cloudformation"].create_calls) == 2
