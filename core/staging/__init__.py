"""Artifact packaging and staging helpers."""

from .packager import NpmPackager, Packager, package_code
from .uploader import StagedObjects, StagingUploader

__all__ = ["NpmPackager", "Packager", "package_code", "StagedObjects", "StagingUploader"]
