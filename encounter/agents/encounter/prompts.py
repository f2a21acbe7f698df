"""
Encounter Prompt Templates

Prompt builders for the two language-generation calls of the encounter
pipeline:

1. Intent prompt  - traits -> 5-8 catalog search queries + personality summary
2. Explain prompt - traits + candidate items -> per-item reason and score

Prompt Engineering Pattern:
- XML tags separate data (traits, items) from instructions
- The reply contract is a single JSON object with snake_case keys
- Catalog sources are Japanese marketplaces, so keywords are requested in
  Japanese while the instructions stay in English
"""

import json
from typing import Any, Dict, List, Sequence

from encounter.schemas.encounter import CatalogItem, TraitRecord
from encounter.utils.constants import (
    EXPLAIN_TRAIT_LIMIT,
    INTENT_TRAIT_LIMIT,
    MAX_RECOMMENDATIONS,
    PERSONALITY_CONTEXT_MAX_CHARS,
    REASON_MAX_CHARS,
    TMDB_GENRES,
)

CATEGORY_LABELS: Dict[str, str] = {
    "books": "books",
    "movies": "movies",
    "goods": "products",
    "skills": "skill-building tools and equipment",
}

SKILLS_STEERING = (
    "IMPORTANT: this is the skill-building category. Do NOT suggest books, "
    "textbooks, workbooks, e-books or any other reading material. Suggest "
    "physical things the person can practice with: instruments, art supplies, "
    "sports gear, tools, gadgets, kits, stationery, training equipment."
)

# How each trait category should influence the searches
TRAIT_INTERPRETATION_RULES = """- personality -> the tendency of choices (adventurous -> novel things, careful -> proven classics)
- hobby -> direct relation (likes cooking -> cookware, ingredients)
- skill -> tools and equipment to improve that skill
- work -> productivity and work-related items
- value -> the axis of choice (environmental awareness -> ethical products)
- lifestyle -> things that fit their daily scenes
- experience -> the natural next step"""


def _format_traits(traits: Sequence[TraitRecord], limit: int, with_category: bool) -> str:
    lines: List[str] = []
    for trait in list(traits)[:limit]:
        if with_category:
            lines.append(f"- {trait.label} ({trait.category}): {trait.description}")
        else:
            lines.append(f"- {trait.label}: {trait.description}")
    return "\n".join(lines)


def _genre_hint_rule(category: str) -> str:
    if category == "movies":
        names = ", ".join(f"{name}={gid}" for name, gid in TMDB_GENRES.items())
        return f"TMDb genre id when one clearly fits ({names}), otherwise null"
    if category == "books":
        return "a book genre (business, self_help, science, art, novel, manga, kids) when one clearly fits, otherwise null"
    return "null"


def build_intent_prompt(traits: Sequence[TraitRecord], category: str) -> str:
    """
    Build the prompt that turns traits into catalog search queries.

    Only the top INTENT_TRAIT_LIMIT traits (already sorted by confidence)
    are included.
    """
    category_label = CATEGORY_LABELS.get(category, category)
    skills_rule = f"\n- {SKILLS_STEERING}" if category == "skills" else ""

    return f"""You are an expert in personality analysis.
Analyze the user's traits and produce catalog search keywords for {category_label} that suit this person.

<traits>
{_format_traits(traits, INTENT_TRAIT_LIMIT, with_category=True)}
</traits>

<interpretation_rules>
{TRAIT_INTERPRETATION_RULES}
</interpretation_rules>

<output_format>
{{
  "search_queries": [
    {{
      "keyword": "search keyword (2-4 words)",
      "genre_hint": "{_genre_hint_rule(category)}",
      "rationale": "why this search fits the user's traits (max {REASON_MAX_CHARS} characters)",
      "matched_trait_labels": ["label of a related trait"]
    }}
  ],
  "personality_context": "summary of this person's consumption tendencies (max {PERSONALITY_CONTEXT_MAX_CHARS} characters)"
}}
</output_format>

<rules>
- Produce 5 to 8 search_queries
- Keywords must be specific to the traits, never generic
- Every query must reference at least one trait label exactly as written above
- Keywords must be Japanese words usable on a Japanese marketplace search{skills_rule}
- Reply with the JSON object only
</rules>"""


def build_explain_prompt(
    traits: Sequence[TraitRecord],
    items: Sequence[CatalogItem],
    category: str,
) -> str:
    """
    Build the prompt that writes a personalized reason and score per item.

    Only item index, name and source are sent to keep the prompt small.
    """
    category_label = CATEGORY_LABELS.get(category, category)
    item_list: List[Dict[str, Any]] = [
        {"index": i, "name": item.name, "source": item.source}
        for i, item in enumerate(list(items)[:MAX_RECOMMENDATIONS])
    ]

    return f"""You are an expert in personality analysis.
Given the user's traits and a list of {category_label}, write a personalized recommendation reason for each item.

<traits>
{_format_traits(traits, EXPLAIN_TRAIT_LIMIT, with_category=False)}
</traits>

<items>
{json.dumps(item_list, ensure_ascii=False, indent=2)}
</items>

<output_format>
{{
  "reasons": [
    {{
      "index": 0,
      "reason": "Because you are <trait>, this fits you especially well. (max {REASON_MAX_CHARS} characters)",
      "matched_trait_labels": ["trait label 1", "trait label 2"],
      "score": 0.85
    }}
  ]
}}
</output_format>

<rules>
- Write a reason for every item, keyed by its index
- Always quote the trait the reason is based on
- Keep reasons specific, positive and within {REASON_MAX_CHARS} characters
- score is the relevance to the traits, between 0.0 and 1.0
- Reply with the JSON object only
</rules>"""
