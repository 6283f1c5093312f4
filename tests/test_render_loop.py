"""Tests for the sequential image render loop."""

import pytest

from bookpress.common import (
    CancellationToken,
    PermanentGenerationError,
    PipelineCancelled,
    PrerequisiteMissing,
    ProductionSettings,
    TransientGenerationError,
)
from bookpress.pipeline import ImageRenderLoop, RunStatus, StageStatus
from bookpress.story_generation import Side


def test_renders_every_spread_then_cover(approved_session, renderer, settings, sleep, style_lock, character_lock, blueprint):
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    pages = loop.run(approved_session, style_lock, character_lock)

    assert [page.page_number for page in pages] == [1, 2, 3, 4]
    assert len(renderer.prompts) == 5
    assert "unfolded" in renderer.prompts[-1]
    assert approved_session.cover_illustration is not None
    for page in pages:
        assert page.text_side is page.main_content_side.opposite
        assert page.text == blueprint.narrative_for(page.page_number)
        assert page.illustration
    assert [page.text_side for page in pages] == [Side.LEFT, Side.RIGHT, Side.LEFT, Side.RIGHT]
    assert len(pages[0].text_blocks) == 2


def test_transient_failure_on_one_spread(approved_session, renderer, sleep, style_lock, character_lock):
    settings = ProductionSettings(inter_call_delay_seconds=0.0, retry_attempts=3, retry_backoff_seconds=0.0)
    renderer.failures["[spread 2]"] = [TransientGenerationError("429"), TransientGenerationError("429")]
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    pages = loop.run(approved_session, style_lock, character_lock)

    assert len(pages) == 4
    assert renderer.calls_matching("[spread 2]") == 3
    for number in (1, 3, 4):
        assert renderer.calls_matching(f"[spread {number}]") == 1
        assert [entry.status for entry in approved_session.log.for_spread(number)] == [StageStatus.SUCCEEDED]
    statuses = [entry.status for entry in approved_session.log.for_spread(2)]
    assert statuses == [StageStatus.FAILED, StageStatus.FAILED, StageStatus.SUCCEEDED]
    assert approved_session.log.for_spread(2)[-1].attempt == 3


def test_calls_are_spaced_by_the_inter_call_delay(approved_session, renderer, sleeps, sleep, style_lock, character_lock):
    settings = ProductionSettings(inter_call_delay_seconds=2.0, retry_backoff_seconds=0.0)
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    loop.run(approved_session, style_lock, character_lock)

    assert sleeps == [2.0] * 4


def test_failure_keeps_pages_already_rendered(approved_session, renderer, settings, sleep, style_lock, character_lock):
    renderer.failures["[spread 3]"] = [PermanentGenerationError("content policy")]
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    with pytest.raises(PermanentGenerationError) as excinfo:
        loop.run(approved_session, style_lock, character_lock)

    assert excinfo.value.spread == 3
    assert [page.page_number for page in approved_session.pages] == [1, 2]
    assert approved_session.cover_illustration is None
    assert approved_session.status is RunStatus.FAILED
    assert renderer.calls_matching("[spread 4]") == 0


def test_cancellation_between_spreads(approved_session, renderer, settings, sleep, style_lock, character_lock):
    token = CancellationToken()
    renderer.on_call = lambda prompt: token.cancel() if "[spread 2]" in prompt else None
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep, cancellation=token)

    with pytest.raises(PipelineCancelled) as excinfo:
        loop.run(approved_session, style_lock, character_lock)

    assert excinfo.value.spread == 3
    assert len(approved_session.pages) == 2
    assert approved_session.status is RunStatus.CANCELLED


def test_regenerate_spread_replaces_only_that_page(approved_session, renderer, settings, sleep, style_lock, character_lock):
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)
    before = loop.run(approved_session, style_lock, character_lock)

    page = loop.regenerate_spread(approved_session, 2, style_lock, character_lock)

    after = approved_session.pages
    assert len(after) == 4
    assert page.illustration != before[1].illustration
    assert after[1] is page
    assert page.text == before[1].text
    for index in (0, 2, 3):
        assert after[index] == before[index]
    assert renderer.calls_matching("[spread 2]") == 2


def test_regenerate_unknown_spread(approved_session, renderer, settings, sleep, style_lock, character_lock):
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    with pytest.raises(PrerequisiteMissing):
        loop.regenerate_spread(approved_session, 9, style_lock, character_lock)


def test_rendering_requires_approved_prompts(session, renderer, settings, sleep, style_lock, character_lock):
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    with pytest.raises(PrerequisiteMissing):
        loop.run(session, style_lock, character_lock)
    assert renderer.prompts == []


def test_prompt_count_must_match_plan(approved_session, renderer, settings, sleep, style_lock, character_lock):
    approved_session.artifacts["prompt_audit"] = approved_session.artifacts["prompt_audit"][:3]
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    with pytest.raises(PrerequisiteMissing):
        loop.run(approved_session, style_lock, character_lock)


def test_unexpected_renderer_error_marks_session_failed(
    approved_session, renderer, settings, sleep, style_lock, character_lock
):
    renderer.failures["[spread 2]"] = [OSError("disk full")]
    loop = ImageRenderLoop(renderer, settings=settings, sleep=sleep)

    with pytest.raises(PermanentGenerationError) as excinfo:
        loop.run(approved_session, style_lock, character_lock)

    assert excinfo.value.spread == 2
    assert isinstance(excinfo.value.__cause__, OSError)
    assert [page.page_number for page in approved_session.pages] == [1]
    assert approved_session.status is RunStatus.FAILED
    assert [entry.status for entry in approved_session.log.for_spread(2)] == [StageStatus.FAILED]
