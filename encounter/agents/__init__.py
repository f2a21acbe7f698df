"""
Language-generation prompts for the Trait Encounter backend.

The encounter pipeline makes two single-shot Gemini calls per regeneration,
both returning JSON:

1. Search intent: traits -> catalog search queries + personality context
2. Explanation: traits + candidate items -> per-item reason and score

Calls go through encounter/services/llm_client.py. Prompts live in
encounter/agents/encounter/prompts.py.
"""

from encounter.agents.encounter import (
    SKILLS_STEERING,
    build_explain_prompt,
    build_intent_prompt,
)

__all__ = [
    "SKILLS_STEERING",
    "build_explain_prompt",
    "build_intent_prompt",
]
