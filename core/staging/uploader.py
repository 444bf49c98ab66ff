"""Stage the code archive and infrastructure template in S3."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional

from botocore.exceptions import ClientError

from core.ensure import Ensured, ensure_exists
from core.errors import StagingUnavailableError, client_error_code
from core.models import DeploymentArtifact

logger = logging.getLogger("quokka.staging")

NOT_FOUND_CODES = {"404", "NoSuchBucket", "NotFound"}


@dataclass(slots=True)
class StagedObjects:
    bucket: str
    code_key: str
    template_key: str
    region: str = "us-east-1"

    @property
    def template_url(self) -> str:
        if self.region == "us-east-1":
            return f"https://s3.amazonaws.com/{self.bucket}/{self.template_key}"
        return f"https://s3.{self.region}.amazonaws.com/{self.bucket}/{self.template_key}"


class StagingUploader:
    """Create-if-absent staging bucket plus concurrent uploads."""

    def __init__(self, s3_client: Any, bucket: str, region: str) -> None:
        self._s3 = s3_client
        self.bucket = bucket
        self.region = region

    def probe(self) -> Optional[str]:
        try:
            self._s3.head_bucket(Bucket=self.bucket)
        except ClientError as exc:
            code = client_error_code(exc)
            if code in NOT_FOUND_CODES:
                return None
            raise StagingUnavailableError(
                f"Unable to determine whether bucket {self.bucket} exists: {exc}",
                state={"bucket": self.bucket, "code": code},
            ) from exc
        return self.bucket

    def create(self) -> str:
        create_args: dict[str, Any] = {"Bucket": self.bucket}
        if self.region != "us-east-1":
            create_args["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        logger.info("Creating new bucket %s", self.bucket)
        try:
            self._s3.create_bucket(**create_args)
        except ClientError as exc:
            raise StagingUnavailableError(
                f"Unable to create bucket {self.bucket}: {exc}",
                state={"bucket": self.bucket, "code": client_error_code(exc)},
            ) from exc
        return self.bucket

    def ensure_bucket(self) -> Ensured[str]:
        ensured = ensure_exists(self.probe, self.create)
        if not ensured.created:
            logger.info("Bucket %s already exists", self.bucket)
        return ensured

    def upload(self, artifact: DeploymentArtifact, template_path: Path, template_key: str) -> StagedObjects:
        """Upload archive and template in parallel; fail if either upload fails."""
        uploads: dict[str, Callable[[], BinaryIO]] = {
            artifact.staging_key: artifact.open,
            template_key: lambda: template_path.open("rb"),
        }
        logger.info("Uploading code package and template to s3://%s", self.bucket)

        failures: dict[str, str] = {}
        with ThreadPoolExecutor(max_workers=len(uploads), thread_name_prefix="quokka-upload") as pool:
            futures = {key: pool.submit(self._put, key, opener) for key, opener in uploads.items()}
            for key, future in futures.items():
                exc = future.exception()
                if exc is not None:
                    logger.error("Upload of %s failed: %s", key, exc)
                    failures[key] = str(exc)

        if failures:
            raise StagingUnavailableError(
                f"Failed to stage {', '.join(sorted(failures))} in bucket {self.bucket}",
                state={"bucket": self.bucket, "failed": failures},
            )
        logger.info("Uploaded code package and template")
        return StagedObjects(
            bucket=self.bucket,
            code_key=artifact.staging_key,
            template_key=template_key,
            region=self.region,
        )

    def _put(self, key: str, opener: Callable[[], BinaryIO]) -> None:
        with opener() as body:
            self._s3.put_object(Bucket=self.bucket, Key=key, Body=body)


__all__ = ["StagedObjects", "StagingUploader"]
