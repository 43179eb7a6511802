"""Services for the migration pipeline."""

from .catalog import EntityCatalog, default_catalog, default_specs
from .dependency_graph import DependencyGraph, order
from .preflight import CheckResult, PreflightChecker, PreflightReport
from .transformer import TransformRegistry, coerce_value, to_canonical_timestamp
from .verifier import IntegrityVerifier, VerificationRules

__all__ = [
    "EntityCatalog",
    "default_catalog",
    "default_specs",
    "DependencyGraph",
    "order",
    "CheckResult",
    "PreflightChecker",
    "PreflightReport",
    "TransformRegistry",
    "coerce_value",
    "to_canonical_timestamp",
    "IntegrityVerifier",
    "VerificationRules",
]
