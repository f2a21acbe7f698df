"""
Encounter Prompts - Two-step LLM Architecture

Prompt templates for the encounter (personalized recommendation) pipeline.

Architecture:
- Step 1: intent prompt turns traits into catalog search queries
- Step 2: explain prompt writes per-item reasons and relevance scores
- Model: Gemini (JSON reply, parsed and validated by the service layer)

The service layer is in:
- encounter/services/intent_service.py
- encounter/services/explain_service.py
"""

from encounter.agents.encounter.prompts import (
    SKILLS_STEERING,
    build_explain_prompt,
    build_intent_prompt,
)

__all__ = [
    "SKILLS_STEERING",
    "build_explain_prompt",
    "build_intent_prompt",
]
