"""
Trait store reader.

Traits are extracted and written by another part of the product; this
service only reads them for the encounter pipeline.
"""

import logging
from typing import Dict, List

from pydantic import ValidationError
from supabase import Client

from encounter.schemas.encounter import TraitRecord

logger = logging.getLogger(__name__)

TRAIT_TABLE = "user_trait"


def dedupe_traits(traits: List[TraitRecord]) -> List[TraitRecord]:
    """
    One trait per label (latest extracted_at wins), sorted by confidence
    descending.
    """
    latest: Dict[str, TraitRecord] = {}
    for trait in traits:
        current = latest.get(trait.label)
        if current is None or trait.extracted_at > current.extracted_at:
            latest[trait.label] = trait
    return sorted(latest.values(), key=lambda t: t.confidence, reverse=True)


class SupabaseTraitStore:
    """Reads `user_trait` rows through the user's RLS-scoped client."""

    def __init__(self, supabase_client: Client):
        self._client = supabase_client

    async def get_traits(self, user_id: str) -> List[TraitRecord]:
        response = (
            self._client.table(TRAIT_TABLE)
            .select("id, label, category, description, confidence, extracted_at")
            .eq("user_id", user_id)
            .execute()
        )

        traits: List[TraitRecord] = []
        for row in response.data or []:
            try:
                traits.append(TraitRecord.model_validate(row))
            except ValidationError:
                logger.warning(f"Skipping invalid trait row id={row.get('id')}")

        result = dedupe_traits(traits)
        logger.debug(f"Loaded {len(result)} traits for user_id={user_id}")
        return result
