"""
Encounter Service - request-level orchestration

Per request (user_id, category, force_refresh):

1. Eligibility: the user needs the category's minimum number of traits.
   Fails with EligibilityError before any external call or write.
2. Cached path (force_refresh=False): a stored result with at least one
   item and at least one image is returned as-is. A stored result with
   items but no image at all is degenerate and is regenerated.
3. Forced path: the current stored result is archived to history first
   (best effort), then regenerated regardless of its validity.
4. Regeneration: intent -> aggregation -> explanation, up to 8 items.
5. Persistence: an empty result is returned but never written. A
   non-empty result overwrites the stored one; non-forced generations are
   also appended to history. If the overwrite fails the result is still
   returned, flagged `persisted=False`.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional, Protocol

from supabase import Client

from encounter.catalog import build_catalog_adapters
from encounter.config import settings
from encounter.db.client import get_service_role_client
from encounter.schemas.encounter import (
    CategoryUnlockStatus,
    EncounterClickRequest,
    EncounterResult,
    HistoryEntry,
    TraitRecord,
    UserLatestResult,
    is_degenerate,
)
from encounter.services.aggregation_service import Aggregator, CatalogSearcher, ProductCache
from encounter.services.errors import EligibilityError, PersistenceWriteError
from encounter.services.explain_service import explain_items
from encounter.services.intent_service import TextGenerator, derive_search_intent
from encounter.services.llm_client import GeminiTextGenerator
from encounter.services.product_cache import SupabaseProductCache
from encounter.services.result_store import SupabaseResultStore
from encounter.services.trait_service import SupabaseTraitStore
from encounter.utils.constants import (
    ENCOUNTER_CATEGORIES,
    ENCOUNTER_UNLOCK_RULES,
    HISTORY_DEFAULT_LIMIT,
    MAX_RECOMMENDATIONS,
    required_traits_for,
)

logger = logging.getLogger(__name__)


class TraitStore(Protocol):
    async def get_traits(self, user_id: str) -> List[TraitRecord]: ...


class ResultStore(Protocol):
    async def get_latest(self, user_id: str, category: str) -> Optional[UserLatestResult]: ...

    async def save_latest(self, user_id: str, result: UserLatestResult) -> None: ...

    async def append_history(self, user_id: str, result: UserLatestResult) -> None: ...

    async def get_history(self, user_id: str, category: str, limit: Optional[int] = ...) -> List[HistoryEntry]: ...

    async def log_click(
        self, user_id: str, product_id: str, product_source: str, category: str, position: int
    ) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_servable(result: Optional[UserLatestResult]) -> bool:
    """A stored result can be served when it has items and at least one image."""
    return result is not None and len(result.items) > 0 and not is_degenerate(result.items)


def _to_response(result: UserLatestResult, from_cache: bool, persisted: bool = True) -> EncounterResult:
    return EncounterResult(
        recommendations=result.items,
        personality_context=result.personality_context,
        traits_used_count=result.traits_used_count,
        generated_at=result.generated_at,
        from_cache=from_cache,
        persisted=persisted,
    )


class EncounterPipeline:
    """Generates, caches and archives encounter recommendations for one user."""

    def __init__(
        self,
        traits: TraitStore,
        product_cache: ProductCache,
        result_store: ResultStore,
        generator: TextGenerator,
        adapters: Mapping[str, CatalogSearcher],
        unlock_thresholds: Optional[Dict[str, int]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.traits = traits
        self.result_store = result_store
        self.generator = generator
        self.aggregator = Aggregator(cache=product_cache, adapters=adapters)
        self.unlock_thresholds = unlock_thresholds or {}
        self.clock = clock

    def required_traits(self, category: str) -> int:
        if category in self.unlock_thresholds:
            return self.unlock_thresholds[category]
        return required_traits_for(category)

    async def _eligible_traits(self, user_id: str, category: str) -> List[TraitRecord]:
        traits = await self.traits.get_traits(user_id)
        required = self.required_traits(category)
        if len(traits) < required:
            logger.info(
                f"Category locked: user_id={user_id}, category={category}, "
                f"traits={len(traits)}/{required}"
            )
            raise EligibilityError(category, required, len(traits))
        return traits

    async def _read_latest(self, user_id: str, category: str) -> Optional[UserLatestResult]:
        try:
            return await self.result_store.get_latest(user_id, category)
        except Exception as e:
            logger.warning(
                f"Could not read stored result for user_id={user_id}, "
                f"category={category}, regenerating: {e}"
            )
            return None

    async def _archive_current(self, user_id: str, category: str) -> None:
        current = await self._read_latest(user_id, category)
        if current is None or not current.items:
            return
        try:
            await self.result_store.append_history(user_id, current)
            logger.info(f"Archived current result before refresh: user_id={user_id}, category={category}")
        except PersistenceWriteError as e:
            logger.warning(f"Archive before refresh failed, continuing: {e}")

    async def generate(
        self,
        user_id: str,
        category: str,
        force_refresh: bool = False,
    ) -> EncounterResult:
        """
        Return recommendations for (user, category), regenerating when needed.

        Raises:
            EligibilityError: not enough traits for the category
            PipelineError: search intent could not be derived
        """
        traits = await self._eligible_traits(user_id, category)

        if force_refresh:
            await self._archive_current(user_id, category)
        else:
            latest = await self._read_latest(user_id, category)
            if is_servable(latest):
                logger.info(f"Serving stored result: user_id={user_id}, category={category}")
                return _to_response(latest, from_cache=True)
            if latest is not None and latest.items:
                logger.info(
                    f"Stored result has no images, regenerating: "
                    f"user_id={user_id}, category={category}"
                )

        intent = await derive_search_intent(traits, category, self.generator)
        aggregation = await self.aggregator.aggregate(intent.search_queries, category)
        explained = await explain_items(traits, aggregation.items, category, self.generator)
        items = explained.items[:MAX_RECOMMENDATIONS]

        result = UserLatestResult(
            category=category,
            items=items,
            personality_context=intent.personality_context,
            traits_used_count=len(traits),
            generated_at=self.clock(),
        )

        logger.info(
            f"Generated {len(items)} recommendations: user_id={user_id}, "
            f"category={category}, explain_fallback={explained.fallback}"
        )

        if not items:
            logger.warning(f"Empty result not stored: user_id={user_id}, category={category}")
            return _to_response(result, from_cache=False, persisted=False)

        try:
            await self.result_store.save_latest(user_id, result)
        except PersistenceWriteError as e:
            logger.error(f"Result returned without being stored: {e}")
            return _to_response(result, from_cache=False, persisted=False)

        if not force_refresh:
            try:
                await self.result_store.append_history(user_id, result)
            except PersistenceWriteError as e:
                logger.warning(f"History append failed: {e}")

        return _to_response(result, from_cache=False)

    async def get_latest(self, user_id: str, category: str) -> Optional[EncounterResult]:
        """Stored result if it can be served, without generating anything."""
        latest = await self.result_store.get_latest(user_id, category)
        if not is_servable(latest):
            return None
        return _to_response(latest, from_cache=True)

    async def get_history(
        self,
        user_id: str,
        category: str,
        limit: Optional[int] = HISTORY_DEFAULT_LIMIT,
    ) -> List[HistoryEntry]:
        return await self.result_store.get_history(user_id, category, limit)

    async def get_unlock_status(self, user_id: str) -> List[CategoryUnlockStatus]:
        trait_count = len(await self.traits.get_traits(user_id))
        statuses: List[CategoryUnlockStatus] = []
        for category in ENCOUNTER_CATEGORIES:
            required = self.required_traits(category)
            statuses.append(CategoryUnlockStatus(
                category=category,
                label=ENCOUNTER_UNLOCK_RULES[category]["label"],
                required_traits=required,
                current_traits=trait_count,
                unlocked=trait_count >= required,
            ))
        return statuses

    async def log_click(self, user_id: str, click: EncounterClickRequest) -> bool:
        """Best-effort click logging. Returns False when the write failed."""
        try:
            await self.result_store.log_click(
                user_id,
                product_id=click.product_id,
                product_source=click.product_source,
                category=click.category,
                position=click.position,
            )
        except PersistenceWriteError as e:
            logger.warning(f"Click not logged: {e}")
            return False
        return True


def build_encounter_pipeline(supabase_client: Client) -> EncounterPipeline:
    """
    Wire the production pipeline for one request.

    Per-user tables go through the caller's RLS client. The global product
    cache is shared across users and uses the service-role client when
    SUPABASE_SECRET_KEY is configured.
    """
    if settings.SUPABASE_SECRET_KEY:
        cache_client = get_service_role_client()
    else:
        logger.warning("SUPABASE_SECRET_KEY not set, product cache uses the user client")
        cache_client = supabase_client

    return EncounterPipeline(
        traits=SupabaseTraitStore(supabase_client),
        product_cache=SupabaseProductCache(cache_client),
        result_store=SupabaseResultStore(supabase_client),
        generator=GeminiTextGenerator(),
        adapters=build_catalog_adapters(),
    )
