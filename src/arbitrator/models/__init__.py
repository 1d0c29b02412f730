"""
Data models for arbitrator.

Provides type-safe models for search hits, synonymous groups, call sets,
remote job state and run configuration.
"""

from arbitrator.models.config import ArbitratorConfig, RateLimitPolicy, parse_domain_list
from arbitrator.models.hits import CallSet, DomainHit, HitRecord, SynonymousGroup
from arbitrator.models.jobs import JobHandle, JobStatus, ServiceClass

__all__ = [
    "ArbitratorConfig",
    "CallSet",
    "DomainHit",
    "HitRecord",
    "JobHandle",
    "JobStatus",
    "RateLimitPolicy",
    "ServiceClass",
    "SynonymousGroup",
    "parse_domain_list",
]
