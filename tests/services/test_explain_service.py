"""
Tests for the per-item explanation step and its fallback.
"""

import json

import pytest

from conftest import ScriptedGenerator, build_items, build_traits, explain_reply
from encounter.schemas.encounter import RecommendedItem
from encounter.services.errors import GenerationUnavailableError
from encounter.services.explain_service import explain_items, merge_explanations


def candidates(count):
    return [
        RecommendedItem(**item.model_dump(), reason="query reason", matched_trait_labels=["q"])
        for item in build_items("cand", count)
    ]


class TestExplainItems:

    @pytest.mark.asyncio
    async def test_reasons_are_matched_by_index(self):
        generator = ScriptedGenerator([explain_reply(3, score=0.85)])

        outcome = await explain_items(build_traits(12), candidates(3), "goods", generator)

        assert outcome.fallback is False
        assert [item.reason for item in outcome.items] == [f"personal reason {i}" for i in range(3)]
        assert all(item.score == 0.85 for item in outcome.items)
        assert outcome.items[0].matched_trait_labels == ["trait-1"]

    @pytest.mark.asyncio
    async def test_only_first_eight_items_are_explained(self):
        generator = ScriptedGenerator([explain_reply(8)])

        outcome = await explain_items(build_traits(12), candidates(11), "goods", generator)

        assert len(outcome.items) == 8
        assert '"index": 8' not in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_missing_entries_keep_query_reason(self):
        reply = json.dumps({"reasons": [{"index": 1, "reason": "only one", "score": 0.6}]})
        generator = ScriptedGenerator([reply])

        outcome = await explain_items(build_traits(12), candidates(3), "goods", generator)

        assert [item.reason for item in outcome.items] == ["query reason", "only one", "query reason"]
        assert outcome.items[0].score == 0.7

    @pytest.mark.asyncio
    async def test_scores_are_clamped_and_reasons_truncated(self):
        reply = json.dumps({"reasons": [
            {"index": 0, "reason": "x" * 80, "score": 1.7},
            {"index": 1, "reason": "ok", "score": -2},
            {"index": 2, "reason": "ok", "score": "high"},
        ]})
        generator = ScriptedGenerator([reply])

        outcome = await explain_items(build_traits(12), candidates(3), "goods", generator)

        assert len(outcome.items[0].reason) == 50
        assert [item.score for item in outcome.items] == [1.0, 0.0, 0.7]

    @pytest.mark.asyncio
    async def test_non_list_labels_keep_query_labels(self):
        reply = json.dumps({"reasons": [
            {"index": 0, "reason": "fits you", "matched_trait_labels": 3, "score": 0.8},
            {"index": 1, "reason": "also fits", "matched_trait_labels": {"a": 1}, "score": 0.6},
        ]})
        generator = ScriptedGenerator([reply])

        outcome = await explain_items(build_traits(12), candidates(2), "goods", generator)

        assert outcome.fallback is False
        assert [item.reason for item in outcome.items] == ["fits you", "also fits"]
        assert [item.matched_trait_labels for item in outcome.items] == [["q"], ["q"]]

    @pytest.mark.asyncio
    async def test_empty_reply_falls_back(self):
        generator = ScriptedGenerator([""])
        items = candidates(3)

        outcome = await explain_items(build_traits(12), items, "goods", generator)

        assert outcome.fallback is True
        assert outcome.items == items

    @pytest.mark.asyncio
    async def test_unparseable_reply_falls_back(self):
        generator = ScriptedGenerator(["sorry, no JSON today"])
        items = candidates(10)

        outcome = await explain_items(build_traits(12), items, "goods", generator)

        assert outcome.fallback is True
        assert outcome.items == items[:8]

    @pytest.mark.asyncio
    async def test_transport_failure_falls_back(self):
        generator = ScriptedGenerator([GenerationUnavailableError("timeout")])
        items = candidates(4)

        outcome = await explain_items(build_traits(12), items, "goods", generator)

        assert outcome.fallback is True
        assert outcome.items == items

    @pytest.mark.asyncio
    async def test_no_items_skips_generation(self):
        generator = ScriptedGenerator([])

        outcome = await explain_items(build_traits(12), [], "goods", generator)

        assert outcome.items == []
        assert generator.prompts == []

    @pytest.mark.asyncio
    async def test_prompt_sends_only_name_and_source(self):
        generator = ScriptedGenerator([explain_reply(2)])

        await explain_items(build_traits(20), candidates(2), "goods", generator)

        prompt = generator.prompts[0]
        assert "cand item 0" in prompt
        assert "https://shop.example.com" not in prompt
        assert "trait-14:" in prompt
        assert "trait-15:" not in prompt


class TestMergeExplanations:

    def test_odd_field_types_never_raise(self):
        items = candidates(3)
        payload = {"reasons": [
            {"index": 0, "reason": {"nested": "object"}, "score": None, "matched_trait_labels": False},
            {"index": 1, "reason": "fine", "score": 0.4, "matched_trait_labels": [1, None, "calm"]},
            {"index": 2, "reason": 42, "score": [0.5], "matched_trait_labels": "solo"},
        ]}

        merged = merge_explanations(items, payload)

        assert len(merged) == 3
        assert merged[0].matched_trait_labels == ["q"]
        assert merged[0].score == 0.7
        assert merged[1].matched_trait_labels == ["1", "calm"]
        assert merged[2].reason == "42"
        assert merged[2].matched_trait_labels == ["solo"]
        assert merged[2].score == 0.7
