"""FHIR adapters for admin directories and the Query Directory."""

from __future__ import annotations

from .client import FhirClient, SearchResult
from .directories import FhirAggregateDirectory, FhirSourceDirectory
from .schema import Bundle, BundleEntry, BundleLink

__all__ = [
    "Bundle",
    "BundleEntry",
    "BundleLink",
    "FhirAggregateDirectory",
    "FhirClient",
    "FhirSourceDirectory",
    "SearchResult",
]
