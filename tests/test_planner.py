import json

import pytest

from novelist.agents.planner import Planner, carry_over_ids, merge_plot_point, plan_changes
from novelist.errors import SchemaViolationError
from novelist.models import Chapter, Plan


@pytest.mark.asyncio
async def test_generate_plan(client, sdk, reply, plan_json):
    sdk.aio.models.generate_content.return_value = reply(plan_json)

    plan = await Planner(client).generate("a lighthouse keeper hears voices in the fog")

    assert len(plan.character_settings) == 2
    assert plan.plot_outline[0].title == "Chapter 1: The First Voice"
    assert all(c.id for c in plan.character_settings)
    prompt = sdk.aio.models.generate_content.call_args.kwargs["contents"]
    assert "a lighthouse keeper hears voices in the fog" in prompt


@pytest.mark.asyncio
async def test_generate_plan_with_global_prompt(client, sdk, reply, plan_json):
    sdk.aio.models.generate_content.return_value = reply(plan_json)

    await Planner(client).generate("idea", global_prompt="Always write in present tense.")

    prompt = sdk.aio.models.generate_content.call_args.kwargs["contents"]
    assert prompt.startswith("Always write in present tense.\n\n")


@pytest.mark.asyncio
async def test_generate_plan_rejects_malformed_reply(client, sdk, reply):
    sdk.aio.models.generate_content.return_value = reply('{"tone": "missing everything else"}')

    with pytest.raises(SchemaViolationError):
        await Planner(client).generate("idea")


@pytest.mark.asyncio
async def test_refine_keeps_ids_of_matching_entities(client, sdk, reply, sample_plan, plan_data):
    plan_data["tone"] = "Bleak"
    plan_data["characterSettings"].append(
        {"name": "The Voice", "description": "Nobody knows.", "motivation": "To be heard."}
    )
    sdk.aio.models.generate_content.return_value = reply(json.dumps(plan_data))

    plan = await Planner(client).refine(sample_plan, "add the voice as a character")

    assert plan.tone == "Bleak"
    assert plan.character_settings[0].id == sample_plan.character_settings[0].id
    assert plan.character_settings[1].id == sample_plan.character_settings[1].id
    assert plan.character_settings[2].id not in {c.id for c in sample_plan.character_settings}
    assert [p.id for p in plan.plot_outline] == [p.id for p in sample_plan.plot_outline]
    prompt = sdk.aio.models.generate_content.call_args.kwargs["contents"]
    assert "add the voice as a character" in prompt
    assert '"plotOutline"' in prompt


def test_carry_over_keeps_portraits(sample_plan, plan_data):
    with_portrait = sample_plan.model_copy(deep=True)
    with_portrait.character_settings[0].portrait = "data:image/png;base64,AAAA"

    merged = carry_over_ids(with_portrait, Plan.model_validate(plan_data))

    assert merged.character_settings[0].portrait == "data:image/png;base64,AAAA"
    assert merged.character_settings[1].portrait is None


def test_carry_over_positional_matches_renamed_plot_point(sample_plan, plan_data):
    plan_data["plotOutline"][2]["title"] = "Chapter 3: Darkness"
    updated = Plan.model_validate(plan_data)

    assert carry_over_ids(sample_plan, updated).plot_outline[2].id != sample_plan.plot_outline[2].id
    merged = carry_over_ids(sample_plan, updated, positional=True)
    assert [p.id for p in merged.plot_outline] == [p.id for p in sample_plan.plot_outline]


@pytest.mark.asyncio
async def test_sync_rewrites_only_target_description(client, sdk, reply, sample_plan, plan_data):
    plan_data["plotOutline"][1]["description"] = "Mira and Tobias row out to the village at low tide."
    sdk.aio.models.generate_content.return_value = reply(json.dumps(plan_data))
    chapter = Chapter(id=2, title="Chapter 2", content="They rowed out at low tide.")

    plan = await Planner(client).sync_with_chapter(sample_plan, chapter)

    assert plan.plot_outline[1].description.startswith("Mira and Tobias row out")
    assert plan.plot_outline[1].id == sample_plan.plot_outline[1].id
    assert plan_changes(sample_plan, plan, chapter.id) == []
    prompt = sdk.aio.models.generate_content.call_args.kwargs["contents"]
    assert "They rowed out at low tide." in prompt
    assert "Chapter 2" in prompt


def test_plan_changes_reports_edits_outside_target(sample_plan, plan_data):
    plan_data["tone"] = "Cheerful"
    plan_data["plotOutline"][0]["description"] = "Changed."
    plan_data["plotOutline"][1]["title"] = "Renamed"
    after = Plan.model_validate(plan_data)

    assert plan_changes(sample_plan, after, 2) == ["tone", "plot_outline[0]", "plot_outline[1].title"]


def test_merge_plot_point_takes_only_target_description(sample_plan, plan_data):
    plan_data["plotOutline"][1]["description"] = "Synced."
    plan_data["tone"] = "Changed by the sync"
    synced = carry_over_ids(sample_plan, Plan.model_validate(plan_data))
    current = sample_plan.model_copy(update={"tone": "Edited meanwhile"})

    merged = merge_plot_point(current, synced, sample_plan, 2)

    assert merged.tone == "Edited meanwhile"
    assert merged.plot_outline[1].description == "Synced."
    assert merged.plot_outline[0] == sample_plan.plot_outline[0]
    assert merge_plot_point(current, synced, sample_plan, 9) is current
