"""Install and uninstall drivers sequencing policy, staging and stack steps."""

from __future__ import annotations

import logging
import re
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import boto3

from core.constants import (
    CREATE_COMPLETE,
    CREATE_IN_PROGRESS,
    DELETE_COMPLETE,
    DELETE_IN_PROGRESS,
    PARAM_CODE_BUCKET,
    PARAM_CODE_KEY,
    PARAM_EMAIL,
    PARAM_UID,
)
from core.ensure import ensure_exists
from core.errors import ValidationError
from core.identity import current_identity
from core.models import InstallationRecord, PolicyDoc, StackDescriptor
from core.policy.installer import PolicyInstaller
from core.policy.synthesizer import PolicySynthesizer
from core.polling import Poller
from core.record import write_record
from core.settings import Settings
from core.stack.controller import StackController, StatusCallback, template_parameters
from core.staging.packager import NpmPackager, Packager, package_code
from core.staging.uploader import StagingUploader

logger = logging.getLogger("quokka.deploy")

_UID_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,39}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


@dataclass(slots=True)
class DeploymentContext:
    """Everything one install/uninstall invocation needs; nothing is shared across runs."""

    settings: Settings
    cloudformation: Any
    iam: Any
    sts: Any
    s3: Any
    packager: Packager = field(default_factory=NpmPackager)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    on_status: Optional[StatusCallback] = None

    @classmethod
    def from_session(cls, settings: Settings, session: Any | None = None, **kwargs: Any) -> "DeploymentContext":
        session = session or boto3.Session(region_name=settings.region)
        return cls(
            settings=settings,
            cloudformation=session.client("cloudformation"),
            iam=session.client("iam"),
            sts=session.client("sts"),
            s3=session.client("s3"),
            **kwargs,
        )

    def poller(self, timeout: float) -> Poller:
        return Poller(
            interval=self.settings.poll_interval,
            max_interval=self.settings.max_poll_interval,
            backoff=self.settings.poll_backoff,
            timeout=timeout,
            cancel_event=self.cancel_event,
        )

    def stack_controller(self) -> StackController:
        return StackController(self.cloudformation, self.poller(self.settings.stack_timeout), self.on_status)


@dataclass(slots=True)
class InstallOutcome:
    created: bool
    descriptor: StackDescriptor
    record_path: Optional[Path] = None


@dataclass(slots=True)
class UninstallOutcome:
    deleted: bool
    descriptor: Optional[StackDescriptor] = None


def install(
    context: DeploymentContext,
    email: str,
    uid: str,
    policy_template: PolicyDoc | None = None,
) -> InstallOutcome:
    settings = context.settings
    uid = uid.lower()
    if not _EMAIL_RE.match(email or ""):
        raise ValidationError(f"Invalid email address: {email!r}")
    if not _UID_RE.match(uid):
        raise ValidationError(f"UID must be 1-40 lowercase letters, digits or dashes: {uid!r}")

    template = policy_template or PolicyDoc.load(settings.policy_template)
    identity = current_identity(context.sts)
    policy = PolicySynthesizer(
        identity.account_id,
        settings.region,
        partition=settings.partition,
        regionless_services=settings.regionless_services,
        accountless_services=settings.accountless_services,
    ).synthesize(template)
    PolicyInstaller(context.iam, settings.policy_name, context.poller(settings.policy_timeout)).install(policy, identity)

    controller = context.stack_controller()
    logger.info("Looking for stack %s", settings.stack_name)
    ensured = ensure_exists(
        lambda: controller.find_active(settings.stack_name),
        lambda: _provision(context, controller, email, uid),
    )
    if not ensured.created:
        logger.info("Stack %s already installed (%s)", settings.stack_name, ensured.value.stack_id)
        log_outputs(ensured.value)
        return InstallOutcome(created=False, descriptor=ensured.value)
    record_path = write_record(InstallationRecord.from_descriptor(ensured.value), settings.result_file)
    logger.info("Wrote installation record to %s", record_path)
    return InstallOutcome(created=True, descriptor=ensured.value, record_path=record_path)


def _provision(
    context: DeploymentContext,
    controller: StackController,
    email: str,
    uid: str,
) -> StackDescriptor:
    settings = context.settings
    logger.info("Stack %s not found; provisioning", settings.stack_name)
    if not settings.template_file.is_file():
        raise ValidationError(f"Infrastructure template {settings.template_file} does not exist")

    uploader = StagingUploader(context.s3, settings.bucket_name(uid), settings.region)
    uploader.ensure_bucket()

    with tempfile.TemporaryDirectory(prefix="quokka-") as work_dir:
        artifact = package_code(
            context.packager,
            settings.code_dir,
            Path(work_dir) / settings.lambda_file,
            settings.staging_key(settings.lambda_file),
        )
        try:
            staged = uploader.upload(artifact, settings.template_file, settings.staging_key(settings.template_file.name))
        finally:
            artifact.discard()

    controller.validate_template(staged.template_url)
    parameters = template_parameters(
        {
            PARAM_EMAIL: email,
            PARAM_UID: uid,
            PARAM_CODE_BUCKET: staged.bucket,
            PARAM_CODE_KEY: staged.code_key,
        }
    )
    stack_id = controller.create(settings.stack_name, staged.template_url, parameters, settings.capabilities)
    descriptor = controller.require_status(
        controller.wait_for_terminal(stack_id, CREATE_IN_PROGRESS),
        CREATE_COMPLETE,
    )
    log_outputs(descriptor)
    return descriptor


def uninstall(context: DeploymentContext) -> UninstallOutcome:
    settings = context.settings
    controller = context.stack_controller()
    existing = controller.find_active(settings.stack_name)
    if existing is None:
        logger.info("Stack %s not found; nothing to do", settings.stack_name)
        return UninstallOutcome(deleted=False)

    logger.info("Uninstalling stack %s (%s)", settings.stack_name, existing.stack_id)
    controller.delete(settings.stack_name)
    final = controller.require_status(
        controller.wait_for_terminal(existing.stack_id, DELETE_IN_PROGRESS),
        DELETE_COMPLETE,
    )
    return UninstallOutcome(deleted=True, descriptor=final)


def log_outputs(descriptor: StackDescriptor) -> None:
    for key, value in descriptor.outputs.items():
        description = descriptor.output_descriptions.get(key)
        if description:
            logger.info("  %s: %s (%s)", key, value, description)
        else:
            logger.info("  %s: %s", key, value)


__all__ = ["DeploymentContext", "InstallOutcome", "UninstallOutcome", "install", "uninstall", "log_outputs"]
