"""Turn the function source tree into a deployable zip archive."""

from __future__ import annotations

import json
import logging
import subprocess
import tarfile
import zipfile
from pathlib import Path
from typing import Protocol, Sequence

from core.errors import PackagingError
from core.models import DeploymentArtifact

logger = logging.getLogger("quokka.packager")

TARBALL_ROOT = "package/"


class Packager(Protocol):
    def prepare(self, code_dir: Path) -> Path: ...

    def pack(self, source_archive: Path, output_archive: Path) -> None: ...


def expected_archive_name(package_config: dict) -> str:
    """Name of the tarball ``npm pack`` writes for a given package.json."""
    try:
        name = str(package_config["name"])
        version = str(package_config["version"])
    except KeyError as exc:
        raise PackagingError(f"package.json is missing {exc.args[0]!r}") from exc
    return f"{name.lstrip('@').replace('/', '-', 1)}-{version}.tgz"


class NpmPackager:
    """Build with ``npm pack`` and repackage the tarball as a Lambda zip."""

    def __init__(self, command: Sequence[str] = ("npm", "pack")) -> None:
        self.command = list(command)

    def prepare(self, code_dir: Path) -> Path:
        manifest = code_dir / "package.json"
        try:
            package_config = json.loads(manifest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PackagingError(f"Unable to read {manifest}: {exc}") from exc

        logger.info("Running %s in %s", " ".join(self.command), code_dir)
        try:
            result = subprocess.run(
                self.command,
                cwd=code_dir,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                encoding="utf-8",
            )
        except (OSError, subprocess.CalledProcessError) as exc:
            output = getattr(exc, "stdout", None) or ""
            raise PackagingError(f"{' '.join(self.command)} failed in {code_dir}", state={"output": output}) from exc
        logger.debug("%s", result.stdout)

        archive = code_dir / expected_archive_name(package_config)
        if not archive.exists():
            raise PackagingError(f"Expected archive {archive} was not produced")
        return archive

    def pack(self, source_archive: Path, output_archive: Path) -> None:
        logger.info("Repackaging %s into %s", source_archive.name, output_archive)
        try:
            with tarfile.open(source_archive, "r:gz") as tar, zipfile.ZipFile(
                output_archive, "w", compression=zipfile.ZIP_DEFLATED
            ) as archive:
                for member in tar.getmembers():
                    if not member.isfile():
                        continue
                    name = member.name[len(TARBALL_ROOT) :] if member.name.startswith(TARBALL_ROOT) else member.name
                    extracted = tar.extractfile(member)
                    if extracted is None:
                        continue
                    with extracted:
                        archive.writestr(name, extracted.read())
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as exc:
            output_archive.unlink(missing_ok=True)
            raise PackagingError(f"Unable to package {source_archive}: {exc}") from exc


def package_code(packager: Packager, code_dir: Path, output_archive: Path, staging_key: str) -> DeploymentArtifact:
    """Prepare, pack and discard the intermediate tarball."""
    source_archive = packager.prepare(code_dir)
    try:
        packager.pack(source_archive, output_archive)
    finally:
        source_archive.unlink(missing_ok=True)
    return DeploymentArtifact(local_path=output_archive, staging_key=staging_key)


__all__ = ["Packager", "NpmPackager", "expected_archive_name", "package_code"]
