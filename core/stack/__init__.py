"""Stack lifecycle control."""

from .controller import StackController, template_parameters

__all__ = ["StackController", "template_parameters"]
