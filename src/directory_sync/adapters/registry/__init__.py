"""Registry adapter."""

from __future__ import annotations

from .client import FhirRegistry
from .translator import designated_endpoint, translate_designation

__all__ = ["FhirRegistry", "designated_endpoint", "translate_designation"]
