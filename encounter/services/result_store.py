"""
Per-user result store.

- `encounter_recommendation`: exactly one live row per (user_id, category),
  overwritten in place on every successful regeneration
- `encounter_recommendation_history`: append-only archive of result sets
- `encounter_click_log`: click-throughs on recommended items

All access goes through the user's RLS-scoped Supabase client. Write
failures are raised as PersistenceWriteError so the pipeline decides
whether they are fatal.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError
from pydantic import ValidationError
from supabase import Client

from encounter.schemas.encounter import HistoryEntry, UserLatestResult
from encounter.services.errors import PersistenceWriteError
from encounter.utils.constants import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT

logger = logging.getLogger(__name__)

LATEST_TABLE = "encounter_recommendation"
HISTORY_TABLE = "encounter_recommendation_history"
CLICK_LOG_TABLE = "encounter_click_log"

RESULT_COLUMNS = "category, items, personality_context, traits_used_count, generated_at"


def clamp_history_limit(limit: Optional[int]) -> int:
    if limit is None or limit <= 0:
        return HISTORY_DEFAULT_LIMIT
    return min(limit, HISTORY_MAX_LIMIT)


def _result_row(user_id: str, result: UserLatestResult) -> Dict[str, Any]:
    return {
        "user_id": user_id,
        "category": result.category,
        "items": [item.model_dump(mode="json") for item in result.items],
        "personality_context": result.personality_context,
        "traits_used_count": result.traits_used_count,
        "generated_at": result.generated_at.isoformat(),
    }


class SupabaseResultStore:
    """Latest result, history and click log for the authenticated user."""

    def __init__(self, supabase_client: Client):
        self._client = supabase_client

    async def get_latest(self, user_id: str, category: str) -> Optional[UserLatestResult]:
        """
        Fetch the live result for (user, category).

        Returns None when no row exists or the stored row no longer
        validates (it will be regenerated).
        """
        response = (
            self._client.table(LATEST_TABLE)
            .select(RESULT_COLUMNS)
            .eq("user_id", user_id)
            .eq("category", category)
            .limit(1)
            .execute()
        )

        if not response.data:
            return None

        try:
            return UserLatestResult.model_validate(response.data[0])
        except ValidationError as e:
            logger.warning(
                f"Stored result for user_id={user_id}, category={category} "
                f"is invalid ({e.error_count()} errors), ignoring it"
            )
            return None

    async def save_latest(self, user_id: str, result: UserLatestResult) -> None:
        """Overwrite the live result for (user, category)."""
        row = _result_row(user_id, result)
        row["updated_at"] = datetime.now(timezone.utc).isoformat()

        try:
            self._client.table(LATEST_TABLE).upsert(
                row, on_conflict="user_id,category"
            ).execute()
        except APIError as e:
            # 42501: RLS rejected the row
            logger.error(
                f"Database rejected latest result for user_id={user_id}, "
                f"category={result.category} (code={e.code}): {e.message}"
            )
            raise PersistenceWriteError("could not save latest result") from e
        except Exception as e:
            logger.error(
                f"Failed to save latest result for user_id={user_id}, "
                f"category={result.category}: {e}"
            )
            raise PersistenceWriteError("could not save latest result") from e

        logger.info(
            f"Saved latest result for user_id={user_id}, category={result.category} "
            f"({len(result.items)} items)"
        )

    async def append_history(self, user_id: str, result: UserLatestResult) -> None:
        """Append a result set to the history archive."""
        row = _result_row(user_id, result)
        row["archived_at"] = datetime.now(timezone.utc).isoformat()

        try:
            self._client.table(HISTORY_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(
                f"Failed to append history for user_id={user_id}, "
                f"category={result.category}: {e}"
            )
            raise PersistenceWriteError("could not append history entry") from e

        logger.info(f"Appended history for user_id={user_id}, category={result.category}")

    async def get_history(
        self,
        user_id: str,
        category: str,
        limit: Optional[int] = HISTORY_DEFAULT_LIMIT,
    ) -> List[HistoryEntry]:
        """Archived result sets, newest first."""
        response = (
            self._client.table(HISTORY_TABLE)
            .select(f"id, {RESULT_COLUMNS}, archived_at")
            .eq("user_id", user_id)
            .eq("category", category)
            .order("generated_at", desc=True)
            .limit(clamp_history_limit(limit))
            .execute()
        )

        entries: List[HistoryEntry] = []
        for row in response.data or []:
            try:
                entries.append(HistoryEntry.model_validate(row))
            except ValidationError:
                logger.warning(f"Skipping invalid history row id={row.get('id')}")
        return entries

    async def log_click(
        self,
        user_id: str,
        product_id: str,
        product_source: str,
        category: str,
        position: int,
    ) -> None:
        """Record a click-through on a recommended item."""
        row = {
            "user_id": user_id,
            "product_id": product_id,
            "product_source": product_source,
            "category": category,
            "position": position,
            "clicked_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self._client.table(CLICK_LOG_TABLE).insert(row).execute()
        except Exception as e:
            logger.error(f"Failed to log click for user_id={user_id}: {e}")
            raise PersistenceWriteError("could not log click") from e
