"""Shared fixtures wiring the fake AWS clients into a deployment context."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from core.deploy import DeploymentContext
from core.models import PolicyDoc
from core.settings import Settings

from tests.fakes import FakeCloudFormation, FakeIam, FakePackager, FakeS3, FakeSts


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    template = tmp_path / "quokka.cform"
    template.write_text("AWSTemplateFormatVersion: '2010-09-09'\n", encoding="utf-8")
    return Settings(
        code_dir=tmp_path / "lambda",
        template_file=template,
        result_file=tmp_path / "quokka-stack.json",
        poll_interval=0.0,
        max_poll_interval=0.0,
        stack_timeout=30.0,
        policy_timeout=30.0,
    )


@pytest.fixture
def policy_template() -> PolicyDoc:
    return PolicyDoc.model_validate(
        {
            "Version": "2012-10-17",
            "Statement": [
                {"Sid": "Deploy", "Effect": "Allow", "Action": ["logs:CreateLogGroup", "s3:ListBucket"]},
            ],
        }
    )


@pytest.fixture
def aws() -> dict[str, Any]:
    return {
        "cloudformation": FakeCloudFormation(),
        "iam": FakeIam(),
        "sts": FakeSts(),
        "s3": FakeS3(),
    }


@pytest.fixture
def context(settings: Settings, aws: dict[str, Any]) -> DeploymentContext:
    return DeploymentContext(settings=settings, packager=FakePackager(), **aws)
