"""Core domain models and services for the Quokka deployer."""

from .models import Arn, InstallationRecord, PolicyDoc, PolicyStatement, StackDescriptor

__all__ = ["Arn", "InstallationRecord", "PolicyDoc", "PolicyStatement", "StackDescriptor"]
