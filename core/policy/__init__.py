"""Policy synthesis and installation helpers."""

from .installer import PolicyInstaller
from .synthesizer import PolicySynthesizer

__all__ = ["PolicyInstaller", "PolicySynthesizer"]
