import asyncio
import json
from types import SimpleNamespace

import pytest

from novelist.config import Config
from novelist.models import AppSettings, AppState, CheckerFeedback, LogKind, TaskKind
from novelist.references import BEGIN_CONTEXT
from novelist.session import NovelSession

APPROVED = '{"verdict": "Approved", "thoughts": {"overallImpression": "Solid.", "detailedFeedback": []}}'


def _prompt(sdk):
    return sdk.aio.models.generate_content.call_args.kwargs["contents"]


@pytest.mark.asyncio
async def test_generate_plan(client, sdk, reply, plan_json):
    session = NovelSession(config=Config(), client=client)
    sdk.aio.models.generate_content.return_value = reply(plan_json)

    plan = await session.generate_plan("a lighthouse keeper hears voices")

    assert session.plan is plan
    assert session.app_state is AppState.PLANNING
    assert session.initial_idea == "a lighthouse keeper hears voices"
    assert not session.is_plan_loading


@pytest.mark.asyncio
async def test_generate_plan_needs_an_idea(client, sdk):
    session = NovelSession(config=Config(), client=client)

    assert await session.generate_plan("   ") is None
    assert session.error_message == "Please enter your story idea first."
    sdk.aio.models.generate_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_generate_plan_failure_sets_error_state(client, sdk):
    session = NovelSession(config=Config(), client=client)
    sdk.aio.models.generate_content.side_effect = RuntimeError("invalid key")

    assert await session.generate_plan("idea") is None
    assert session.app_state is AppState.ERROR
    assert session.plan is None
    assert not session.is_plan_loading
    assert "API key" in session.error_message


@pytest.mark.asyncio
async def test_write_chapter_appends_and_selects(session, sdk, reply):
    sdk.aio.models.generate_content.return_value = reply("The lamp went out.")

    chapter = await session.write_chapter()

    assert chapter.id == 4
    assert chapter.title == "Chapter 4"
    assert session.chapters[-1] is chapter
    assert session.selected_chapter_id == 4
    assert session.app_state is AppState.WRITING
    assert not session.tasks.any_active
    assert "continue from here" not in _prompt(sdk)


@pytest.mark.asyncio
async def test_write_chapter_continues_and_expands_mentions(session, sdk, reply):
    session.update_settings(AppSettings(continue_from_last_chapter=True))
    sdk.aio.models.generate_content.return_value = reply("More.")

    await session.write_chapter("Bring back @character(Tobias Wren).")

    prompt = _prompt(sdk)
    assert "...\nThe door was red. Beyond it, the lamp room waited." in prompt
    assert BEGIN_CONTEXT in prompt
    assert "[Character: Tobias Wren]" in prompt


@pytest.mark.asyncio
async def test_write_chapter_is_single_flight(session, sdk, reply):
    async def slow_reply(**kwargs):
        await asyncio.sleep(0.01)
        return reply("Drafted.")

    sdk.aio.models.generate_content.side_effect = slow_reply

    first, second = await asyncio.gather(session.write_chapter(), session.write_chapter())

    assert first is not None and second is None
    assert len(session.chapters) == 4
    assert sdk.aio.models.generate_content.await_count == 1


@pytest.mark.asyncio
async def test_write_failure_releases_task(session, sdk, reply):
    sdk.aio.models.generate_content.side_effect = [RuntimeError("503"), reply("Second try.")]

    assert await session.write_chapter() is None
    assert session.error_message == "Failed to write the chapter. Please try again."
    assert len(session.chapters) == 3
    assert not session.tasks.is_busy(TaskKind.WRITING)

    assert (await session.write_chapter()).content == "Second try."
    assert session.error_message is None


@pytest.mark.asyncio
async def test_write_without_plan_is_rejected(client, sdk):
    session = NovelSession(config=Config(), client=client)

    assert await session.write_chapter() is None
    assert session.chapters == []
    sdk.aio.models.generate_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_attaches_feedback_without_touching_content(session, sdk, reply):
    before = session.chapters[1].content
    sdk.aio.models.generate_content.return_value = reply(APPROVED)

    feedback = await session.check_chapter(1)

    assert feedback.approved
    assert session.chapters[1].feedback == feedback
    assert session.chapters[1].content == before


@pytest.mark.asyncio
async def test_concurrent_checks_on_different_chapters(session, sdk, reply):
    async def slow_reply(**kwargs):
        await asyncio.sleep(0.01)
        return reply(APPROVED)

    sdk.aio.models.generate_content.side_effect = slow_reply

    results = await asyncio.gather(
        session.check_chapter(0), session.check_chapter(1), session.check_chapter(0)
    )

    assert results[0] is not None and results[1] is not None
    assert results[2] is None
    assert session.tasks.active.checking_chapter == {}


@pytest.mark.asyncio
async def test_check_non_existent_chapter(session, sdk):
    assert await session.check_chapter(7) is None
    assert session.error_message == "Cannot check a non-existent chapter."
    sdk.aio.models.generate_content.assert_not_awaited()


@pytest.mark.asyncio
async def test_revise_replaces_content_and_clears_feedback(session, sdk, reply):
    feedback = CheckerFeedback.model_validate_json(APPROVED)
    session.chapters[2] = session.chapters[2].with_feedback(feedback)
    sdk.chat.send_message.side_effect = [
        reply(calls=[("replaceInChapter", {"oldText": "red", "newText": "blue"})]),
        reply(None),
    ]

    chapter = await session.revise_chapter(2, "make the door blue")

    assert chapter.content == "The door was blue. Beyond it, the lamp room waited."
    assert chapter.feedback is None
    assert session.chapters[2] is chapter
    assert session.chapters[0].content.startswith("The fog came in")


@pytest.mark.asyncio
async def test_revise_needs_an_instruction(session, sdk):
    assert await session.revise_chapter(0, "  ") is None
    assert session.error_message == "Cannot revise without a plan, chapter, or revision prompt."
    sdk.aio.chats.create.assert_not_called()


@pytest.mark.asyncio
async def test_revise_failure_keeps_chapter(session, sdk):
    sdk.chat.send_message.side_effect = RuntimeError("quota")
    before = session.chapters[0]

    assert await session.revise_chapter(0, "shorter") is None
    assert session.chapters[0] is before
    assert session.app_state is AppState.ERROR
    assert not session.tasks.any_active


@pytest.mark.asyncio
async def test_sync_plan_replaces_plan(session, sdk, reply, plan_data):
    plan_data["plotOutline"][0]["description"] = "Mira hears her name and answers."
    sdk.aio.models.generate_content.return_value = reply(json.dumps(plan_data))
    ids = [p.id for p in session.plan.plot_outline]

    plan = await session.sync_plan(0)

    assert session.plan is plan
    assert plan.plot_outline[0].description == "Mira hears her name and answers."
    assert [p.id for p in plan.plot_outline] == ids


def test_plan_edits_locked_while_busy(session, sample_plan):
    session.tasks.begin(TaskKind.REVISING, 0)
    assert not session.update_plan(sample_plan.model_copy(update={"tone": "Light"}))
    assert session.plan.tone == "Quiet gothic dread"

    session.tasks.finish(TaskKind.REVISING, 0)
    assert session.update_plan(sample_plan.model_copy(update={"tone": "Light"}))
    assert session.plan.tone == "Light"


def test_manual_edit_keeps_feedback(session):
    feedback = CheckerFeedback.model_validate_json(APPROVED)
    session.chapters[0] = session.chapters[0].with_feedback(feedback)

    assert session.update_chapter_content(0, "Rewritten by hand.")
    assert session.chapters[0].content == "Rewritten by hand."
    assert session.chapters[0].feedback == feedback


@pytest.mark.asyncio
async def test_agent_applies_steps_as_they_arrive(session, sdk, reply):
    seen = []

    def on_step(entry):
        seen.append((entry.kind, session.chapters[-1].content))

    sdk.chat.send_message.side_effect = [
        reply(calls=[("appendChapter", {"content": "Dawn over the harbour."})]),
        reply(calls=[("updateTone", {"tone": "Hopeful"})]),
        reply("All done."),
    ]
    session.select_chapter(2)

    log = await session.run_agent("write an epilogue", on_step=on_step)

    assert [e.kind for e in log] == [
        LogKind.ACTION, LogKind.RESULT, LogKind.ACTION, LogKind.RESULT, LogKind.FINISH
    ]
    # the new chapter was visible from its RESULT entry on
    assert seen[0][1] == "The door was red. Beyond it, the lamp room waited."
    assert seen[1][1] == "Dawn over the harbour."
    assert len(session.chapters) == 4
    assert session.plan.tone == "Hopeful"
    assert session.selected_chapter_id == 2
    assert not session.tasks.is_busy(TaskKind.AGENT)


@pytest.mark.asyncio
async def test_agent_failure_keeps_applied_changes(session, sdk, reply):
    sdk.chat.send_message.side_effect = [
        reply(calls=[("updateTone", {"tone": "Hopeful"})]),
        RuntimeError("connection reset"),
    ]

    assert await session.run_agent("brighten it") is None

    assert session.plan.tone == "Hopeful"
    assert session.agent_log[-1].kind is LogKind.ERROR
    assert session.error_message.startswith("The agent failed.")
    assert not session.tasks.is_busy(TaskKind.AGENT)


@pytest.mark.asyncio
async def test_generate_portrait(session, sdk):
    image = SimpleNamespace(image=SimpleNamespace(image_bytes=b"png"))
    sdk.aio.models.generate_images.return_value = SimpleNamespace(generated_images=[image])
    character = session.plan.character_settings[1]

    portrait = await session.generate_portrait(character.id)

    assert portrait == "data:image/png;base64,cG5n"
    assert session.plan.character_settings[1].portrait == portrait
    assert session.plan.character_settings[0].portrait is None


def test_snapshot_while_plan_loading_saves_initial(session, tmp_path):
    session.app_state = AppState.PLANNING
    session.is_plan_loading = True

    assert session.snapshot().app_state is AppState.INITIAL

    path = session.save(tmp_path / "s.json")
    restored = NovelSession.open(path, client=session.client)
    assert restored.app_state is AppState.INITIAL
    assert len(restored.chapters) == 3


def test_export_non_existent_chapter(session, tmp_path):
    assert session.export_chapter(9, tmp_path) is None
    assert session.error_message == "Cannot export a non-existent chapter."


@pytest.mark.asyncio
async def test_check_feedback_dropped_when_revision_lands_first(session, sdk, reply):
    async def slow_check(**kwargs):
        await asyncio.sleep(0.05)
        return reply(APPROVED)

    sdk.aio.models.generate_content.side_effect = slow_check
    sdk.chat.send_message.side_effect = [
        reply(calls=[("replaceInChapter", {"oldText": "red", "newText": "blue"})]),
        reply(None),
    ]

    feedback, chapter = await asyncio.gather(
        session.check_chapter(2), session.revise_chapter(2, "make the door blue")
    )

    assert feedback is None
    assert chapter.content.startswith("The door was blue.")
    assert session.chapters[2].feedback is None
    assert not session.tasks.any_active


@pytest.mark.asyncio
async def test_concurrent_syncs_keep_both_plot_points(session, sdk, reply, plan_data):
    first, second = json.loads(json.dumps(plan_data)), json.loads(json.dumps(plan_data))
    first["plotOutline"][0]["description"] = "Mira answers the voice."
    second["plotOutline"][1]["description"] = "The village rises at low tide."
    replies = iter([(0.02, first), (0.01, second)])

    async def slow_sync(**kwargs):
        delay, data = next(replies)
        await asyncio.sleep(delay)
        return reply(json.dumps(data))

    sdk.aio.models.generate_content.side_effect = slow_sync
    ids = [p.id for p in session.plan.plot_outline]

    await asyncio.gather(session.sync_plan(0), session.sync_plan(1))

    outline = session.plan.plot_outline
    assert outline[0].description == "Mira answers the voice."
    assert outline[1].description == "The village rises at low tide."
    assert [p.id for p in outline] == ids
