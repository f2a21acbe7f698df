"""
Pydantic schemas for the encounter (personalized recommendation) flow.

Internal pipeline shapes (traits, search intent, catalog items) and the
request/response contracts of the /encounter endpoints live together here
because the persisted records are returned to clients unchanged.
"""

from datetime import datetime
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from encounter.utils.constants import (
    DEFAULT_ITEM_SCORE,
    PERSONALITY_CONTEXT_MAX_CHARS,
    REASON_MAX_CHARS,
)

EncounterCategory = Literal["books", "movies", "goods", "skills"]
CatalogSource = Literal["marketplace", "book_marketplace", "movie_metadata"]


def _truncate(value: Any, limit: int) -> str:
    value = "" if value is None else str(value).strip()
    return value if len(value) <= limit else value[:limit]


def _labels(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if v]


# ============================================================================
# PIPELINE MODELS
# ============================================================================

class TraitRecord(BaseModel):
    """A personal trait produced by the trait store (read-only here)."""
    id: str
    label: str
    category: str
    description: str = ""
    confidence: float = Field(..., ge=0.0, le=1.0)
    extracted_at: datetime


class SearchQuery(BaseModel):
    """One catalog search derived from the user's traits."""
    keyword: str = Field(..., min_length=1)
    genre_hint: Optional[str] = None
    rationale: str = ""
    matched_trait_labels: List[str] = Field(default_factory=list)

    @field_validator("rationale", mode="before")
    @classmethod
    def _limit_rationale(cls, v: Any) -> str:
        return _truncate(v, REASON_MAX_CHARS)

    @field_validator("genre_hint", mode="before")
    @classmethod
    def _coerce_genre_hint(cls, v):
        # The model sometimes answers with a bare number
        if v is None or v == "":
            return None
        return str(v)

    @field_validator("matched_trait_labels", mode="before")
    @classmethod
    def _coerce_labels(cls, v: Any) -> List[str]:
        return _labels(v)


class SearchIntent(BaseModel):
    """Search queries plus a short personality summary for one request."""
    search_queries: List[SearchQuery] = Field(..., min_length=1)
    personality_context: str = ""

    @field_validator("personality_context", mode="before")
    @classmethod
    def _limit_context(cls, v: Any) -> str:
        return _truncate(v, PERSONALITY_CONTEXT_MAX_CHARS)


class CatalogQuery(BaseModel):
    """Input accepted by every catalog adapter."""
    keyword: str
    genre_hint: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1, le=30)


class CatalogItem(BaseModel):
    """
    Normalized item shared by all catalog sources.

    `id` is prefixed with the source name so merges across sources never
    collide. `image_url` may be None for a single item.
    """
    id: str
    source: CatalogSource
    name: str
    price: Optional[float] = None
    image_url: Optional[str] = None
    action_url: str
    reference_url: str
    rating: Optional[float] = None


class RecommendedItem(CatalogItem):
    """Catalog item personalized for one user."""
    reason: str = ""
    matched_trait_labels: List[str] = Field(default_factory=list)
    score: float = Field(DEFAULT_ITEM_SCORE, ge=0.0, le=1.0)

    @field_validator("reason", mode="before")
    @classmethod
    def _limit_reason(cls, v: Any) -> str:
        return _truncate(v, REASON_MAX_CHARS)

    @field_validator("matched_trait_labels", mode="before")
    @classmethod
    def _coerce_labels(cls, v: Any) -> List[str]:
        return _labels(v)


def has_any_image(items: List[CatalogItem]) -> bool:
    """True when at least one item carries a usable image URL."""
    return any(item.image_url for item in items)


def is_degenerate(items: List[CatalogItem]) -> bool:
    """A non-empty result set in which no item carries an image."""
    return len(items) > 0 and not has_any_image(items)


class UserLatestResult(BaseModel):
    """The live recommendation record for one (user, category)."""
    category: EncounterCategory
    items: List[RecommendedItem]
    personality_context: str = ""
    traits_used_count: int = Field(0, ge=0)
    generated_at: datetime


class HistoryEntry(UserLatestResult):
    """Archived recommendation set (append-only)."""
    id: Optional[str] = None
    # When the set was written to history; `generated_at` is when it was produced
    archived_at: Optional[datetime] = None


# ============================================================================
# REQUEST MODELS
# ============================================================================

class EncounterGenerateRequest(BaseModel):
    """Request to generate (or fetch cached) recommendations for a category."""
    category: EncounterCategory = Field(
        ...,
        description="Recommendation domain",
        examples=["books", "goods"]
    )
    force_refresh: bool = Field(
        False,
        description=(
            "Skip the cached result and regenerate. The current result is "
            "archived to history first."
        )
    )


class EncounterClickRequest(BaseModel):
    """Click-through on a recommended item."""
    product_id: str = Field(..., min_length=1, max_length=2000)
    product_source: CatalogSource
    action_url: str = Field(..., min_length=1, max_length=4000)
    category: EncounterCategory
    position: int = Field(..., ge=0, le=50)

    @field_validator("action_url")
    @classmethod
    def _http_only(cls, v: str) -> str:
        # The URL is echoed back as a redirect target
        if not v.startswith(("https://", "http://")):
            raise ValueError("action_url must be an http(s) URL")
        return v


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class EncounterResult(BaseModel):
    """Result of a generate call (fresh or cached)."""
    recommendations: List[RecommendedItem]
    personality_context: str
    traits_used_count: int
    generated_at: datetime
    from_cache: bool
    persisted: bool = Field(
        True,
        description=(
            "False when a fresh result could not be saved and will not be "
            "served from cache next time."
        )
    )


class EncounterHistoryResponse(BaseModel):
    """Response model for GET /encounter/history."""
    category: EncounterCategory
    history: List[HistoryEntry]
    count: int


class EncounterCachedResponse(BaseModel):
    """Response model for GET /encounter/cached."""
    category: EncounterCategory
    cached: Optional[EncounterResult] = None


class CategoryUnlockStatus(BaseModel):
    """Unlock state of one category for the current user."""
    category: EncounterCategory
    label: str
    required_traits: int
    current_traits: int
    unlocked: bool


class EncounterCategoriesResponse(BaseModel):
    """Response model for GET /encounter/categories."""
    categories: List[CategoryUnlockStatus]


class EncounterClickResponse(BaseModel):
    """Response model for POST /encounter/click."""
    redirect_url: str


class EncounterErrorResponse(BaseModel):
    """Body of 400/502 errors returned by the encounter endpoints."""
    error: str
    details: str
    required_traits: Optional[int] = None
    current_traits: Optional[int] = None


__all__ = [
    "EncounterCategory",
    "CatalogSource",
    "TraitRecord",
    "SearchQuery",
    "SearchIntent",
    "CatalogQuery",
    "CatalogItem",
    "RecommendedItem",
    "UserLatestResult",
    "HistoryEntry",
    "EncounterGenerateRequest",
    "EncounterClickRequest",
    "EncounterResult",
    "EncounterHistoryResponse",
    "EncounterCachedResponse",
    "CategoryUnlockStatus",
    "EncounterCategoriesResponse",
    "EncounterClickResponse",
    "EncounterErrorResponse",
    "has_any_image",
    "is_degenerate",
]
