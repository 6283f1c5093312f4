"""Tests for the text and illustration generation services."""

import json

import httpx
import pytest
import requests
from replicate.exceptions import ReplicateError

from bookpress.ai_generation import CharacterLock, ReplicateIllustrationRenderer, build_illustration_prompt
from bookpress.common import (
    ChatResult,
    PermanentGenerationError,
    TransientGenerationError,
    call_with_retry,
    parse_json_payload,
)
from bookpress.story_generation import LiteLLMStoryDirector, SpreadPlan
from conftest import BLUEPRINT_DATA, PLAN_DATA, png_bytes


class FakeCompletion:
    def __init__(self, *replies: str) -> None:
        self.replies = list(replies)
        self.calls = []

    def __call__(self, **kwargs):
        self.calls.append(kwargs)
        return ChatResult(text=self.replies.pop(0), raw=None)


class FakeClient:
    def __init__(self, output=None, error=None) -> None:
        self.output = output
        self.error = error
        self.calls = []

    def run(self, model, input):
        self.calls.append((model, input))
        if self.error is not None:
            raise self.error
        return self.output


class FakeFileOutput:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


# ---------------------------------------------------------------------------- story director


def test_skeleton_requests_the_order_spread_count(story_request):
    completion = FakeCompletion(json.dumps(BLUEPRINT_DATA))
    director = LiteLLMStoryDirector(model="test-model", completion_fn=completion)

    blueprint = director.synthesize_skeleton(story_request)

    assert blueprint.spread_count == 4
    assert blueprint.title == "The Moon Garden"
    call = completion.calls[0]
    assert call["model"] == "test-model"
    assert "exactly 4 spreads" in call["messages"][0]["content"]
    assert "Child name: Maya" in call["messages"][1]["content"]


def test_skeleton_with_wrong_spread_count_is_rejected(story_request):
    data = dict(BLUEPRINT_DATA, spreads=BLUEPRINT_DATA["spreads"][:3])
    director = LiteLLMStoryDirector(model="test-model", completion_fn=FakeCompletion(json.dumps(data)))

    with pytest.raises(PermanentGenerationError):
        director.synthesize_skeleton(story_request)


def test_fenced_json_reply_is_accepted(blueprint):
    reply = "```json\n" + json.dumps(PLAN_DATA) + "\n```"
    director = LiteLLMStoryDirector(model="test-model", completion_fn=FakeCompletion(reply))

    plan = director.plan_visuals(blueprint)

    assert isinstance(plan, SpreadPlan)
    assert len(plan) == 4


def test_malformed_reply_is_a_permanent_failure(blueprint):
    director = LiteLLMStoryDirector(model="test-model", completion_fn=FakeCompletion("not json at all"))

    with pytest.raises(PermanentGenerationError):
        director.plan_visuals(blueprint)


def test_invalid_side_is_a_permanent_failure(spread_plan):
    data = json.loads(json.dumps(PLAN_DATA))
    data["spreads"][0]["main_content_side"] = "Centre"
    director = LiteLLMStoryDirector(model="test-model", completion_fn=FakeCompletion(json.dumps(data)))

    with pytest.raises(PermanentGenerationError):
        director.audit_visuals(spread_plan)


def test_prompt_count_must_match_plan(spread_plan):
    director = LiteLLMStoryDirector(
        model="test-model", completion_fn=FakeCompletion(json.dumps({"prompts": ["one", "two"]}))
    )

    with pytest.raises(PermanentGenerationError):
        director.synthesize_prompts(spread_plan, "watercolour")


def test_prompt_synthesis_carries_style_guide(spread_plan):
    prompts = [f"scene {number}" for number in range(1, 5)]
    completion = FakeCompletion(json.dumps({"prompts": prompts}), json.dumps({"prompts": prompts}))
    director = LiteLLMStoryDirector(model="test-model", completion_fn=completion)

    assert director.synthesize_prompts(spread_plan, "Gouache, pastel palette") == prompts
    assert director.audit_prompts(prompts) == prompts
    assert "Gouache, pastel palette" in completion.calls[0]["messages"][0]["content"]


def test_model_from_environment(monkeypatch):
    monkeypatch.setenv("BOOKPRESS_STORY_MODEL", "env-model")
    assert LiteLLMStoryDirector(completion_fn=FakeCompletion()).model == "env-model"


def test_parse_json_payload_rejects_empty_reply():
    with pytest.raises(PermanentGenerationError):
        parse_json_payload("```json\n```")


# ---------------------------------------------------------------------------- retry


def test_retry_stops_on_permanent_failure(sleeps, sleep):
    calls = []

    def operation():
        calls.append(1)
        raise PermanentGenerationError("rejected")

    with pytest.raises(PermanentGenerationError):
        call_with_retry(operation, attempts=3, backoff_seconds=1.0, sleep=sleep)

    assert len(calls) == 1
    assert sleeps == []


def test_retry_reports_every_transient_attempt(sleeps, sleep):
    failures = []

    def operation():
        raise TransientGenerationError("busy")

    with pytest.raises(TransientGenerationError):
        call_with_retry(
            operation,
            attempts=3,
            backoff_seconds=0.25,
            sleep=sleep,
            on_failure=lambda attempt, exc: failures.append(attempt),
        )

    assert failures == [1, 2, 3]
    assert sleeps == [0.25, 0.25]


# ---------------------------------------------------------------------------- replicate renderer


def test_renderer_builds_model_input(style_lock, character_lock):
    client = FakeClient(output=FakeFileOutput(png_bytes()))
    renderer = ReplicateIllustrationRenderer(client=client)

    data = renderer.render_illustration("Maya waters the moon flowers.", style_lock, character_lock, 5)

    assert data == png_bytes()
    model, payload = client.calls[0]
    assert model == "black-forest-labs/flux-kontext-pro"
    assert payload["aspect_ratio"] == "16:9"
    assert payload["seed"] == 7
    assert "input_image" not in payload
    assert "exactly 5 years old" in payload["prompt"]
    assert "Soft watercolour" in payload["prompt"]


def test_renderer_downloads_url_outputs(monkeypatch, style_lock, character_lock):
    class Response:
        content = b"image-bytes"

        def raise_for_status(self):
            return None

    requested = []
    monkeypatch.setattr(requests, "get", lambda url, timeout: requested.append(url) or Response())
    renderer = ReplicateIllustrationRenderer(client=FakeClient(output=["https://cdn.example/out.png"]))

    assert renderer.render_illustration("scene", style_lock, character_lock, None) == b"image-bytes"
    assert requested == ["https://cdn.example/out.png"]


def test_renderer_uploads_reference_image(tmp_path, style_lock):
    photo = tmp_path / "child.png"
    photo.write_bytes(png_bytes())
    client = FakeClient(output=[b"raw"])
    renderer = ReplicateIllustrationRenderer(client=client)

    renderer.render_illustration("scene", style_lock, CharacterLock(name="Maya", reference_image=photo), 5)

    assert client.calls[0][1]["input_image"].name == str(photo)


@pytest.mark.parametrize(
    "error, expected",
    [
        (ReplicateError(status=429, detail="slow down"), TransientGenerationError),
        (ReplicateError(status=503, detail="unavailable"), TransientGenerationError),
        (ReplicateError(status=422, detail="invalid input"), PermanentGenerationError),
        (httpx.ConnectError("connection refused"), TransientGenerationError),
    ],
)
def test_renderer_classifies_failures(error, expected, style_lock, character_lock):
    renderer = ReplicateIllustrationRenderer(client=FakeClient(error=error))

    with pytest.raises(expected):
        renderer.render_illustration("scene", style_lock, character_lock, 5)


def test_renderer_rejects_empty_output(style_lock, character_lock):
    renderer = ReplicateIllustrationRenderer(client=FakeClient(output=[]))

    with pytest.raises(PermanentGenerationError):
        renderer.render_illustration("scene", style_lock, character_lock, 5)


def test_unsupported_model_identifier():
    with pytest.raises(ValueError):
        ReplicateIllustrationRenderer(client=FakeClient(), model_identifier="acme/unknown-model")


def test_illustration_prompt_carries_traits(style_lock, character_lock):
    prompt = build_illustration_prompt("Scene text", style_lock, character_lock, None)

    assert "CHARACTER CONTINUITY\n- hair: curly" in prompt.positive
    assert prompt.negative == style_lock.negative_prompt
