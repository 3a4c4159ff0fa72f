"""Use-case binding: classification + catalog -> executable binding."""

from .schemas import Binding, BindingContext
from .binder import DEFAULT_USE_CASE_ID, UseCaseBinder, missing_required_capabilities

__all__ = [
    "Binding",
    "BindingContext",
    "DEFAULT_USE_CASE_ID",
    "UseCaseBinder",
    "missing_required_capabilities",
]
