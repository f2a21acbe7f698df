"""
Service layer for the Trait Encounter backend.

Contains the recommendation pipeline:
- rate_limiter: per-service throttle shared by the catalog adapters
- product_cache: global, cross-user keyword search cache
- intent_service / explain_service: the two language-generation steps
- aggregation_service: cache-or-fetch fan-out over search queries
- result_store / trait_service: per-user persistence (RLS)
- encounter_service: request-level orchestration

Only leaf modules are re-exported here; the catalog package imports the
rate limiter through this package.
"""

from .errors import (
    EligibilityError,
    EncounterError,
    GenerationUnavailableError,
    PersistenceWriteError,
    PipelineError,
    SourceFetchError,
    StructuredOutputError,
    UpstreamParseError,
)
from .rate_limiter import RateLimiter, rate_limiter

__all__ = [
    "EligibilityError",
    "EncounterError",
    "GenerationUnavailableError",
    "PersistenceWriteError",
    "PipelineError",
    "SourceFetchError",
    "StructuredOutputError",
    "UpstreamParseError",
    "RateLimiter",
    "rate_limiter",
]
