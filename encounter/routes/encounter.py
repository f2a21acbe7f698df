"""
FastAPI routes for encounter (personalized recommendation) endpoints.

All endpoints require authentication via Supabase Auth. Per-user data is
read and written through the caller's RLS-scoped Supabase client.

Endpoints:
- POST /encounter/generate: cached or freshly generated recommendations
- GET /encounter/history: archived result sets, newest first
- GET /encounter/cached: stored result without generating
- GET /encounter/categories: unlock status per category
- POST /encounter/click: record a click-through, return the redirect URL
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from encounter.auth.dependencies import AuthenticatedUser, get_authenticated_user
from encounter.db.client import get_supabase_client
from encounter.schemas.encounter import (
    EncounterCachedResponse,
    EncounterCategoriesResponse,
    EncounterCategory,
    EncounterClickRequest,
    EncounterClickResponse,
    EncounterGenerateRequest,
    EncounterHistoryResponse,
    EncounterResult,
)
from encounter.services.encounter_service import EncounterPipeline, build_encounter_pipeline
from encounter.services.errors import EligibilityError, PipelineError
from encounter.utils.constants import HISTORY_DEFAULT_LIMIT, HISTORY_MAX_LIMIT

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/encounter",
    tags=["encounter"]
)


def get_encounter_pipeline(
    auth_user: AuthenticatedUser = Depends(get_authenticated_user)
) -> EncounterPipeline:
    """Build the pipeline for the authenticated user's RLS-scoped client."""
    supabase_client = get_supabase_client(auth_user.access_token)
    return build_encounter_pipeline(supabase_client)


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.post(
    "/generate",
    response_model=EncounterResult,
    status_code=200,
    summary="Generate encounter recommendations",
    description="""
    Returns the stored recommendations for a category, or generates new ones.

    **Authentication:** Required (Bearer token)

    **Behavior:**
    - A stored result is returned immediately (`from_cache=true`) unless
      `force_refresh` is set or the stored result has no images
    - `force_refresh=true` archives the current result to history first
    - An empty generation is returned but never stored

    **Errors:**
    - 400 `insufficient_traits`: the category is still locked
    - 502 `generation_failed`: search intent could not be derived; retry later
    - 500 `generation_failed`: unexpected failure (e.g. traits could not be read)
    """
)
async def generate_encounter(
    request: EncounterGenerateRequest,
    auth_user: AuthenticatedUser = Depends(get_authenticated_user),
    pipeline: EncounterPipeline = Depends(get_encounter_pipeline),
) -> EncounterResult:
    logger.info(
        f"POST /encounter/generate called by user_id={auth_user.user_id}, "
        f"category={request.category}, force_refresh={request.force_refresh}"
    )

    try:
        result = await pipeline.generate(
            user_id=auth_user.user_id,
            category=request.category,
            force_refresh=request.force_refresh,
        )
    except EligibilityError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "insufficient_traits",
                "details": (
                    f"{e.required} traits are needed for this category. "
                    f"Collect {e.missing} more to unlock it."
                ),
                "required_traits": e.required,
                "current_traits": e.current,
                "missing_traits": e.missing,
            }
        )
    except PipelineError as e:
        logger.error(f"Encounter generation failed for user {auth_user.user_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "error": "generation_failed",
                "details": "Could not generate recommendations. Please try again in a moment."
            }
        )
    except Exception as e:
        logger.error(f"Unexpected error generating encounter for user {auth_user.user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "generation_failed",
                "details": "Failed to generate recommendations"
            }
        )

    logger.info(
        f"Returning {len(result.recommendations)} recommendations "
        f"(from_cache={result.from_cache}, persisted={result.persisted})"
    )
    return result


@router.get(
    "/history",
    response_model=EncounterHistoryResponse,
    summary="List archived recommendations",
)
async def get_encounter_history(
    category: EncounterCategory = Query(..., description="Recommendation domain"),
    limit: int = Query(HISTORY_DEFAULT_LIMIT, ge=1, le=HISTORY_MAX_LIMIT),
    auth_user: AuthenticatedUser = Depends(get_authenticated_user),
    pipeline: EncounterPipeline = Depends(get_encounter_pipeline),
) -> EncounterHistoryResponse:
    """Archived result sets for a category, newest first."""
    logger.info(
        f"GET /encounter/history called by user_id={auth_user.user_id}, "
        f"category={category}, limit={limit}"
    )

    try:
        history = await pipeline.get_history(auth_user.user_id, category, limit)
    except Exception as e:
        logger.error(f"Failed to fetch history for user {auth_user.user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "fetch_error",
                "details": "Failed to retrieve recommendation history"
            }
        )

    return EncounterHistoryResponse(category=category, history=history, count=len(history))


@router.get(
    "/cached",
    response_model=EncounterCachedResponse,
    summary="Get stored recommendations without generating",
)
async def get_cached_encounter(
    category: EncounterCategory = Query(..., description="Recommendation domain"),
    auth_user: AuthenticatedUser = Depends(get_authenticated_user),
    pipeline: EncounterPipeline = Depends(get_encounter_pipeline),
) -> EncounterCachedResponse:
    """`cached` is null when nothing servable is stored."""
    try:
        cached = await pipeline.get_latest(auth_user.user_id, category)
    except Exception as e:
        logger.error(f"Failed to fetch stored result for user {auth_user.user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "fetch_error",
                "details": "Failed to retrieve stored recommendations"
            }
        )

    return EncounterCachedResponse(category=category, cached=cached)


@router.get(
    "/categories",
    response_model=EncounterCategoriesResponse,
    summary="Category unlock status",
)
async def get_encounter_categories(
    auth_user: AuthenticatedUser = Depends(get_authenticated_user),
    pipeline: EncounterPipeline = Depends(get_encounter_pipeline),
) -> EncounterCategoriesResponse:
    try:
        categories = await pipeline.get_unlock_status(auth_user.user_id)
    except Exception as e:
        logger.error(f"Failed to compute unlock status for user {auth_user.user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "fetch_error",
                "details": "Failed to retrieve category status"
            }
        )

    return EncounterCategoriesResponse(categories=categories)


@router.post(
    "/click",
    response_model=EncounterClickResponse,
    summary="Record a recommendation click",
)
async def click_encounter_item(
    request: EncounterClickRequest,
    auth_user: AuthenticatedUser = Depends(get_authenticated_user),
    pipeline: EncounterPipeline = Depends(get_encounter_pipeline),
) -> EncounterClickResponse:
    """
    Log the click (best effort) and hand the item URL back for redirect.

    A failed log write never blocks the redirect.
    """
    logged = await pipeline.log_click(auth_user.user_id, request)
    logger.info(
        f"Click on {request.product_source} item at position {request.position} "
        f"by user_id={auth_user.user_id} (logged={logged})"
    )
    return EncounterClickResponse(redirect_url=request.action_url)
