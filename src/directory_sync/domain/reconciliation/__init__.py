"""Reconciliation of source change batches into the aggregate directory."""

from __future__ import annotations

from .authority import resolve_authority
from .batch import latest_changes
from .builder import build_transaction, deletion_transaction, prepare_body
from .context import ReconciliationContext
from .fetcher import fetch_associated
from .pipeline import PipelineResult, apply_source_changes, delete_organization_graph
from .rewrite import RewrittenChange, rewrite_references

__all__ = [
    "PipelineResult",
    "ReconciliationContext",
    "RewrittenChange",
    "apply_source_changes",
    "build_transaction",
    "delete_organization_graph",
    "deletion_transaction",
    "fetch_associated",
    "latest_changes",
    "prepare_body",
    "resolve_authority",
    "rewrite_references",
]
