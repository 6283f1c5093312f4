"""
Service layer for the text-producing generation stages via LiteLLM-compatible models.
"""

from __future__ import annotations

import json
import os
from typing import Any, Mapping, Protocol, Sequence

from bookpress.common import (
    ChatResult,
    CompletionCallable,
    PermanentGenerationError,
    call_chat_completion,
    parse_json_payload,
)

from .models import Blueprint, SpreadPlan
from .request import StoryRequest

DEFAULT_SPREAD_COUNT = 8


class StoryGenerationService(Protocol):
    """
    The narrow text-generation surface the stage orchestrator depends on.
    """

    def synthesize_skeleton(self, request: StoryRequest) -> Blueprint: ...

    def audit_skeleton(self, blueprint: Blueprint) -> Blueprint: ...

    def plan_visuals(self, blueprint: Blueprint) -> SpreadPlan: ...

    def audit_visuals(self, plan: SpreadPlan) -> SpreadPlan: ...

    def synthesize_prompts(self, plan: SpreadPlan, style_guide: str) -> list[str]: ...

    def audit_prompts(self, prompts: Sequence[str]) -> list[str]: ...


_BLUEPRINT_SCHEMA = """{
  "title": "string",
  "setting": "one paragraph describing the world of the story, used for the cover",
  "foundation": {"story_core": "string", "main_challenge": "string", "catalyst": "string", "limiter": "string", "moral": "string"},
  "spreads": [{"spread_number": 1, "narrative": "the text printed on this spread"}]
}"""

_SPREAD_PLAN_SCHEMA = """{
  "visual_anchors": {"hero_traits": "string", "signature_items": "string", "recurring_locations": "string", "persistent_props": "string", "spatial_logic": "string"},
  "spreads": [{"spread_number": 1, "key_actions": "string", "main_content_side": "Left or Right", "setting": "string", "mood": "string", "props": "string", "continuity_notes": "string"}]
}"""


class LiteLLMStoryDirector:
    """
    Produces and audits the story blueprint, the visual plan and the final
    illustration prompts with a chat model.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        completion_fn: CompletionCallable | None = None,
        spread_count: int | None = None,
    ) -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY") or os.getenv("LITELLM_API_KEY")
        self._model = (
            model
            or os.getenv("BOOKPRESS_STORY_MODEL")
            or os.getenv("LITELLM_STORY_MODEL")
            or os.getenv("LITELLM_MODEL")
            or "gpt-4.1-mini"
        )
        self._completion_fn: CompletionCallable = completion_fn or call_chat_completion
        self._spread_count = spread_count or DEFAULT_SPREAD_COUNT

    @property
    def model(self) -> str:
        """Return the model identifier in use."""
        return self._model

    # ------------------------------------------------------------------ story skeleton

    def synthesize_skeleton(self, request: StoryRequest) -> Blueprint:
        spreads = request.spread_count or self._spread_count
        system = f"""You are a children's book author planning a personalised picture book.
Write a story skeleton with exactly {spreads} spreads. Each spread narrative is the text printed on that spread, written in the story language.
Keep the child as the hero. Child-safe, inclusive language only.
Respond with valid JSON matching this schema:
{_BLUEPRINT_SCHEMA}
Do not include commentary outside the JSON."""
        user = f"Order details:\n{request.summary_for_prompt()}"
        payload = self._ask_json(system, user, temperature=0.8)
        blueprint = self._build(Blueprint.from_mapping, payload, "story skeleton")
        if blueprint.spread_count != spreads:
            raise PermanentGenerationError(
                f"Story skeleton has {blueprint.spread_count} spreads, expected {spreads}."
            )
        return blueprint

    def audit_skeleton(self, blueprint: Blueprint) -> Blueprint:
        system = f"""You are a senior children's book editor.
Tighten the plot, keep every spread's narrative age-appropriate and make cause and effect clear.
Keep the same number of spreads ({blueprint.spread_count}) and the same language.
Respond with valid JSON matching this schema:
{_BLUEPRINT_SCHEMA}"""
        payload = self._ask_json(system, _dump(blueprint.to_dict()), temperature=0.4)
        audited = self._build(Blueprint.from_mapping, payload, "skeleton audit")
        _require_same_count(audited.spread_count, blueprint.spread_count, "skeleton audit")
        return audited

    # ------------------------------------------------------------------ visual plan

    def plan_visuals(self, blueprint: Blueprint) -> SpreadPlan:
        system = f"""You are the visual director of a picture book printed as 16:9 panoramic spreads.
For every spread decide the key action and which physical side (Left or Right) carries the hero; the other side stays calm for text.
Alternate sides when the story allows. Keep recurring locations and props consistent.
Respond with valid JSON matching this schema:
{_SPREAD_PLAN_SCHEMA}"""
        payload = self._ask_json(system, _dump(blueprint.to_dict()), temperature=0.6)
        plan = self._build(SpreadPlan.from_mapping, payload, "visual plan")
        _require_same_count(len(plan), blueprint.spread_count, "visual plan")
        return plan

    def audit_visuals(self, plan: SpreadPlan) -> SpreadPlan:
        system = f"""You are a creative director reviewing a picture book visual plan.
Fix spatial logic, confirm the hero is visible on every spread and keep the main content side explicit.
Keep exactly {len(plan)} spreads.
Respond with valid JSON matching this schema:
{_SPREAD_PLAN_SCHEMA}"""
        payload = self._ask_json(system, _dump(plan.to_dict()), temperature=0.3)
        audited = self._build(SpreadPlan.from_mapping, payload, "visual audit")
        _require_same_count(len(audited), len(plan), "visual audit")
        return audited

    # ------------------------------------------------------------------ prompts

    def synthesize_prompts(self, plan: SpreadPlan, style_guide: str) -> list[str]:
        system = f"""You are a prompt engineer for an illustration model.
Write one self-contained scene prompt per spread ({len(plan)} total) describing action, setting, lighting and mood.
Apply this technical style guide to every prompt:
{style_guide or "(no extra style guide)"}
Never ask for text, letters or watermarks in the image.
Respond with valid JSON: {{"prompts": ["string", ...]}}"""
        payload = self._ask_json(system, _dump(plan.to_dict()), temperature=0.5)
        prompts = _prompt_list(payload, "prompt synthesis")
        _require_same_count(len(prompts), len(plan), "prompt synthesis")
        return prompts

    def audit_prompts(self, prompts: Sequence[str]) -> list[str]:
        system = f"""You are the final QA reviewer for illustration prompts.
Fix contradictions and remove any request for rendered text. Keep exactly {len(prompts)} prompts in the same order.
Respond with valid JSON: {{"prompts": ["string", ...]}}"""
        payload = self._ask_json(system, _dump({"prompts": list(prompts)}), temperature=0.2)
        audited = _prompt_list(payload, "prompt audit")
        _require_same_count(len(audited), len(prompts), "prompt audit")
        return audited

    # ------------------------------------------------------------------ helpers

    def _ask_json(
        self,
        system: str,
        user: str,
        *,
        temperature: float,
        max_output_tokens: int = 3000,
    ) -> Any:
        result: ChatResult = self._completion_fn(
            model=self._model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_output_tokens,
            api_key=self._api_key,
        )
        if not result.text:
            raise PermanentGenerationError("LLM response did not contain any text content.")
        return parse_json_payload(result.text)

    @staticmethod
    def _build(factory, payload: Any, label: str):
        try:
            return factory(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise PermanentGenerationError(f"Invalid {label} payload: {exc}") from exc


def _dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _prompt_list(payload: Any, label: str) -> list[str]:
    raw = payload.get("prompts") if isinstance(payload, Mapping) else payload
    if not isinstance(raw, list):
        raise PermanentGenerationError(f"Invalid {label} payload: expected a 'prompts' list.")
    prompts = [str(item).strip() for item in raw]
    if not all(prompts):
        raise PermanentGenerationError(f"Invalid {label} payload: empty prompt.")
    return prompts


def _require_same_count(actual: int, expected: int, label: str) -> None:
    if actual != expected:
        raise PermanentGenerationError(f"{label} returned {actual} spreads, expected {expected}.")
