"""
Tests for the encounter pipeline controller.

Covers the request-level behavior end to end with in-memory collaborators:
- eligibility gate (no external calls, no writes)
- stored-result reuse and the no-image self-heal rule
- forced refresh archiving the previous result first
- never overwriting a stored result with an empty one
- cross-user reuse of the global search cache
- the 12-trait "goods" walkthrough
"""

import pytest

from conftest import (
    BASE_TIME,
    CountingAdapter,
    FakeTraitStore,
    ScriptedGenerator,
    build_items,
    build_latest,
    build_traits,
    explain_reply,
    intent_reply,
)
from encounter.schemas.encounter import EncounterClickRequest
from encounter.services.encounter_service import EncounterPipeline, is_servable
from encounter.services.errors import EligibilityError, UpstreamParseError

USER = "user-1"


def make_pipeline(
    product_cache,
    result_store,
    generator,
    adapter=None,
    trait_count=20,
    thresholds=None,
    traits_by_user=None,
):
    adapter = adapter or CountingAdapter()
    traits = FakeTraitStore(traits_by_user or {USER: build_traits(trait_count)})
    return EncounterPipeline(
        traits=traits,
        product_cache=product_cache,
        result_store=result_store,
        generator=generator,
        adapters={"marketplace": adapter},
        unlock_thresholds=thresholds,
        clock=lambda: BASE_TIME,
    )


# =============================================================================
# ELIGIBILITY
# =============================================================================

class TestEligibility:

    @pytest.mark.asyncio
    async def test_below_threshold_raises_without_side_effects(self, product_cache, result_store):
        generator = ScriptedGenerator([])
        adapter = CountingAdapter()
        pipeline = make_pipeline(product_cache, result_store, generator, adapter, trait_count=3)

        with pytest.raises(EligibilityError) as exc_info:
            await pipeline.generate(USER, "goods")

        assert exc_info.value.required == 15
        assert exc_info.value.current == 3
        assert exc_info.value.missing == 12
        assert generator.prompts == []
        assert adapter.calls == []
        assert product_cache.gets == [] and product_cache.puts == []
        assert result_store.writes == 0

    @pytest.mark.asyncio
    async def test_eligibility_applies_to_forced_refresh(self, product_cache, result_store):
        result_store.latest[(USER, "goods")] = build_latest("goods", 3)
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]), trait_count=3)

        with pytest.raises(EligibilityError):
            await pipeline.generate(USER, "goods", force_refresh=True)

        assert result_store.history == []

    @pytest.mark.asyncio
    async def test_unlock_status(self, product_cache, result_store):
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]), trait_count=12)

        statuses = {s.category: s for s in await pipeline.get_unlock_status(USER)}

        assert statuses["books"].unlocked and statuses["movies"].unlocked
        assert not statuses["goods"].unlocked and not statuses["skills"].unlocked
        assert statuses["goods"].required_traits == 15
        assert statuses["goods"].current_traits == 12


# =============================================================================
# STORED RESULT REUSE
# =============================================================================

class TestStoredResult:

    @pytest.mark.asyncio
    async def test_valid_stored_result_is_returned_as_is(self, product_cache, result_store):
        stored = build_latest("goods", 4)
        result_store.latest[(USER, "goods")] = stored
        generator = ScriptedGenerator([])
        pipeline = make_pipeline(product_cache, result_store, generator)

        result = await pipeline.generate(USER, "goods")

        assert result.from_cache is True
        assert result.recommendations == stored.items
        assert result.generated_at == stored.generated_at
        assert generator.prompts == []
        assert result_store.writes == 0

    @pytest.mark.asyncio
    async def test_partially_imageless_result_is_still_valid(self, product_cache, result_store):
        stored = build_latest("goods", 1)
        stored.items.extend(build_latest("goods", 2, with_images=False, prefix="plain").items)
        result_store.latest[(USER, "goods")] = stored
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]))

        result = await pipeline.generate(USER, "goods")

        assert result.from_cache is True
        assert len(result.recommendations) == 3

    @pytest.mark.asyncio
    async def test_imageless_stored_result_is_regenerated(self, product_cache, result_store):
        result_store.latest[(USER, "goods")] = build_latest("goods", 4, with_images=False)
        adapter = CountingAdapter(results={"tent": build_items("tent", 3)})
        generator = ScriptedGenerator([intent_reply(["tent"]), explain_reply(3)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods")

        assert result.from_cache is False
        assert adapter.keywords == ["tent"]
        assert [i.id for i in result_store.latest[(USER, "goods")].items] == [i.id for i in result.recommendations]
        assert is_servable(result_store.latest[(USER, "goods")])

    @pytest.mark.asyncio
    async def test_get_latest_hides_imageless_result(self, product_cache, result_store):
        result_store.latest[(USER, "goods")] = build_latest("goods", 2, with_images=False)
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]))

        assert await pipeline.get_latest(USER, "goods") is None

    @pytest.mark.asyncio
    async def test_get_latest_returns_valid_result(self, product_cache, result_store):
        result_store.latest[(USER, "goods")] = build_latest("goods", 2)
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]))

        cached = await pipeline.get_latest(USER, "goods")

        assert cached.from_cache is True
        assert len(cached.recommendations) == 2


# =============================================================================
# REGENERATION AND PERSISTENCE
# =============================================================================

class TestRegeneration:

    @pytest.mark.asyncio
    async def test_first_generation_writes_latest_and_history(self, product_cache, result_store):
        adapter = CountingAdapter(results={"lamp": build_items("lamp", 2)})
        generator = ScriptedGenerator([intent_reply(["lamp"]), explain_reply(2)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods")

        assert result.from_cache is False
        assert result.persisted is True
        assert result.traits_used_count == 20
        assert result.generated_at == BASE_TIME
        assert result.personality_context == "Curious and practical"
        assert result_store.saves == 1
        assert len(result_store.history) == 1
        assert result_store.history[0][1].items == result.recommendations

    @pytest.mark.asyncio
    async def test_forced_refresh_archives_previous_result_first(self, product_cache, result_store):
        previous = build_latest("goods", 3, prefix="previous")
        result_store.latest[(USER, "goods")] = previous
        adapter = CountingAdapter(results={"mug": build_items("mug", 3)})
        generator = ScriptedGenerator([intent_reply(["mug"]), explain_reply(3)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods", force_refresh=True)

        assert len(result_store.history) == 1
        archived = result_store.history[0][1]
        assert [i.id for i in archived.items] == [i.id for i in previous.items]
        latest = result_store.latest[(USER, "goods")]
        assert [i.id for i in latest.items] == [i.id for i in result.recommendations]
        assert all(i.id.startswith("marketplace:mug") for i in latest.items)

    @pytest.mark.asyncio
    async def test_forced_refresh_without_stored_result(self, product_cache, result_store):
        adapter = CountingAdapter(results={"mug": build_items("mug", 1)})
        generator = ScriptedGenerator([intent_reply(["mug"]), explain_reply(1)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        await pipeline.generate(USER, "goods", force_refresh=True)

        assert result_store.saves == 1
        assert result_store.history == []

    @pytest.mark.asyncio
    async def test_archive_failure_does_not_block_refresh(self, product_cache, result_store):
        result_store.latest[(USER, "goods")] = build_latest("goods", 2)
        result_store.fail_history = True
        adapter = CountingAdapter(results={"mug": build_items("mug", 2)})
        generator = ScriptedGenerator([intent_reply(["mug"]), explain_reply(2)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods", force_refresh=True)

        assert result.persisted is True
        assert result_store.saves == 1

    @pytest.mark.asyncio
    async def test_empty_regeneration_never_shadows_stored_result(self, product_cache, result_store):
        previous = build_latest("goods", 3, prefix="previous")
        result_store.latest[(USER, "goods")] = previous
        adapter = CountingAdapter(results={})
        generator = ScriptedGenerator([intent_reply(["nothing"])])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        empty = await pipeline.generate(USER, "goods", force_refresh=True)

        assert empty.recommendations == []
        assert empty.from_cache is False
        assert result_store.saves == 0
        assert result_store.latest[(USER, "goods")] is previous

        again = await pipeline.generate(USER, "goods")

        assert again.from_cache is True
        assert again.recommendations == previous.items

    @pytest.mark.asyncio
    async def test_empty_first_generation_writes_nothing(self, product_cache, result_store):
        generator = ScriptedGenerator([intent_reply(["nothing"])])
        pipeline = make_pipeline(product_cache, result_store, generator)

        result = await pipeline.generate(USER, "goods")

        assert result.recommendations == []
        assert result_store.writes == 0

    @pytest.mark.asyncio
    async def test_failed_primary_write_returns_unpersisted_result(self, product_cache, result_store):
        result_store.fail_save = True
        adapter = CountingAdapter(results={"lamp": build_items("lamp", 2)})
        generator = ScriptedGenerator([intent_reply(["lamp"]), explain_reply(2)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods")

        assert len(result.recommendations) == 2
        assert result.persisted is False
        assert result_store.latest == {}

    @pytest.mark.asyncio
    async def test_history_failure_after_save_is_tolerated(self, product_cache, result_store):
        result_store.fail_history = True
        adapter = CountingAdapter(results={"lamp": build_items("lamp", 2)})
        generator = ScriptedGenerator([intent_reply(["lamp"]), explain_reply(2)])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods")

        assert result.persisted is True
        assert result_store.saves == 1

    @pytest.mark.asyncio
    async def test_unparseable_intent_ends_request_without_writes(self, product_cache, result_store):
        adapter = CountingAdapter()
        generator = ScriptedGenerator(["garbage", "still garbage"])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        with pytest.raises(UpstreamParseError):
            await pipeline.generate(USER, "goods")

        assert adapter.calls == []
        assert result_store.writes == 0

    @pytest.mark.asyncio
    async def test_explain_failure_keeps_query_reasons(self, product_cache, result_store):
        adapter = CountingAdapter(results={"lamp": build_items("lamp", 2)})
        generator = ScriptedGenerator([intent_reply(["lamp"]), "not json"])
        pipeline = make_pipeline(product_cache, result_store, generator, adapter)

        result = await pipeline.generate(USER, "goods")

        assert [item.reason for item in result.recommendations] == ["because of lamp"] * 2
        assert all(item.score == 0.7 for item in result.recommendations)
        assert result.persisted is True


# =============================================================================
# GLOBAL CACHE ACROSS USERS
# =============================================================================

class TestCrossUserCache:

    @pytest.mark.asyncio
    async def test_second_user_does_not_refetch_shared_keyword(self, product_cache, result_store):
        adapter = CountingAdapter(results={"pour over kettle": build_items("kettle", 5)})
        generator = ScriptedGenerator([
            intent_reply(["pour over kettle"]), explain_reply(3),
            intent_reply(["Pour Over  Kettle"]), explain_reply(3),
        ])
        pipeline = make_pipeline(
            product_cache, result_store, generator, adapter,
            traits_by_user={"alice": build_traits(20), "bob": build_traits(18)},
        )

        first = await pipeline.generate("alice", "goods")
        second = await pipeline.generate("bob", "goods")

        assert len(adapter.calls) == 1
        assert [i.id for i in first.recommendations] == [i.id for i in second.recommendations]
        assert result_store.latest[("bob", "goods")].traits_used_count == 18


# =============================================================================
# WALKTHROUGH
# =============================================================================

class TestGoodsWalkthrough:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "order, expected_count",
        [
            (["cached-a", "cached-b", "cached-c", "fetch-4", "fetch-0"], 8),
            (["cached-a", "fetch-0", "cached-b", "cached-c", "fetch-4"], 6),
        ],
    )
    async def test_twelve_traits_five_queries(self, product_cache, result_store, order, expected_count):
        product_cache.seed("cached-a", "goods", build_items("ca", 2))
        product_cache.seed("cached-b", "goods", build_items("cb", 3))
        product_cache.seed("cached-c", "goods", build_items("cc", 1))
        adapter = CountingAdapter(results={"fetch-4": build_items("f4", 4), "fetch-0": []})
        generator = ScriptedGenerator([intent_reply(order), explain_reply(8)])
        pipeline = make_pipeline(
            product_cache, result_store, generator, adapter,
            trait_count=12, thresholds={"goods": 10},
        )

        result = await pipeline.generate(USER, "goods")

        assert 6 <= len(result.recommendations) <= 8
        assert len(result.recommendations) == expected_count
        assert result.from_cache is False
        assert result.traits_used_count == 12
        ids = [item.id for item in result.recommendations]
        assert len(ids) == len(set(ids))
        # Only the first four queries reach the cache or a source
        assert all(keyword in order[:4] for keyword in adapter.keywords)


# =============================================================================
# CLICK LOG
# =============================================================================

class TestClickLog:

    def _click(self):
        return EncounterClickRequest(
            product_id="marketplace:x",
            product_source="marketplace",
            action_url="https://shop.example.com/x",
            category="goods",
            position=1,
        )

    @pytest.mark.asyncio
    async def test_click_is_logged(self, product_cache, result_store):
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]))

        assert await pipeline.log_click(USER, self._click()) is True
        assert result_store.clicks[0]["product_id"] == "marketplace:x"

    @pytest.mark.asyncio
    async def test_click_log_failure_is_reported(self, product_cache, result_store):
        result_store.fail_click = True
        pipeline = make_pipeline(product_cache, result_store, ScriptedGenerator([]))

        assert await pipeline.log_click(USER, self._click()) is False
