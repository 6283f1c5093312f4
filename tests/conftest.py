"""Shared test fixtures."""

from __future__ import annotations

from collections import Counter
from io import BytesIO

import pytest
from PIL import Image

from bookpress.ai_generation import CharacterLock, StyleLock
from bookpress.catalog import ProductSpec
from bookpress.common import ProductionSettings
from bookpress.pipeline import ProductionSession
from bookpress.story_generation import Blueprint, SpreadPlan, StoryRequest

ORDER_ID = "RWY-ABC123"

PRODUCT_DATA = {
    "id": "square-20",
    "name": "Square 20 x 20",
    "price": 49.0,
    "cover": {"totalWidthCm": 41.0, "totalHeightCm": 21.0, "spineWidthCm": 1.0},
    "page": {"widthCm": 20.0, "heightCm": 20.0},
    "margins": {"topCm": 1.0, "bottomCm": 1.0, "outerCm": 1.0, "innerCm": 1.5},
    "coverContent": {
        "title": {"fromTopCm": 3.0, "widthCm": 16.0},
        "format": {"fromTopCm": 8.0, "widthCm": 14.0},
        "barcode": {"fromTopCm": 17.0, "widthCm": 4.0, "heightCm": 2.0, "fromRightCm": 1.5},
    },
}

BLUEPRINT_DATA = {
    "title": "The Moon Garden",
    "setting": "A moonlit garden where the flowers glow and hum.",
    "foundation": {"story_core": "Maya helps the moon find its lost light.", "moral": "Kindness glows."},
    "spreads": [
        {"spread_number": 1, "narrative": "Maya could not sleep.\n\nThe moon was missing its glow."},
        {"spread_number": 2, "narrative": "She tiptoed into the garden."},
        {"spread_number": 3, "narrative": "The flowers hummed a secret song."},
        {"spread_number": 4, "narrative": "Together they lit up the night."},
    ],
}

PLAN_DATA = {
    "visual_anchors": {"hero_traits": "curly hair, yellow pyjamas"},
    "spreads": [
        {"spread_number": 1, "key_actions": "Maya in bed", "main_content_side": "Right", "mood": "quiet"},
        {"spread_number": 2, "key_actions": "Maya at the door", "main_content_side": "Left"},
        {"spread_number": 3, "key_actions": "Flowers sing", "main_content_side": "Right"},
        {"spread_number": 4, "key_actions": "Moon glows", "main_content_side": "Left"},
    ],
}

PROMPTS = [f"[spread {number}] Maya in the moon garden, scene {number}." for number in range(1, 5)]


def png_bytes(width: int = 160, height: int = 90, color: tuple[int, int, int] = (90, 140, 200)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeStoryService:
    """Returns canned artifacts; ``failures`` maps a method name to errors raised on successive calls."""

    def __init__(self, blueprint: Blueprint, plan: SpreadPlan, prompts: list[str]) -> None:
        self.blueprint = blueprint
        self.plan = plan
        self.prompts = prompts
        self.calls: Counter[str] = Counter()
        self.failures: dict[str, list[BaseException]] = {}

    def _call(self, name: str, result):
        self.calls[name] += 1
        pending = self.failures.get(name)
        if pending:
            raise pending.pop(0)
        return result

    def synthesize_skeleton(self, request):
        return self._call("synthesize_skeleton", self.blueprint)

    def audit_skeleton(self, blueprint):
        return self._call("audit_skeleton", blueprint)

    def plan_visuals(self, blueprint):
        return self._call("plan_visuals", self.plan)

    def audit_visuals(self, plan):
        return self._call("audit_visuals", plan)

    def synthesize_prompts(self, plan, style_guide):
        return self._call("synthesize_prompts", list(self.prompts))

    def audit_prompts(self, prompts):
        return self._call("audit_prompts", list(prompts))


class FakeRenderer:
    """
    In-memory illustration renderer. ``failures`` maps a prompt substring to
    errors raised, one per matching call, before the call succeeds.
    """

    def __init__(self) -> None:
        self.prompts: list[str] = []
        self.failures: dict[str, list[BaseException]] = {}
        self.on_call = None

    def render_illustration(self, prompt, style_lock, character_lock, age) -> bytes:
        self.prompts.append(prompt)
        if self.on_call is not None:
            self.on_call(prompt)
        for marker, pending in self.failures.items():
            if marker in prompt and pending:
                raise pending.pop(0)
        shade = (40 * len(self.prompts)) % 255
        return png_bytes(color=(shade, 120, 200))

    def calls_matching(self, marker: str) -> int:
        return sum(1 for prompt in self.prompts if marker in prompt)


@pytest.fixture
def product() -> ProductSpec:
    return ProductSpec.from_mapping(PRODUCT_DATA)


@pytest.fixture
def story_request() -> StoryRequest:
    return StoryRequest(
        child_name="Maya",
        child_age=5,
        language="en",
        title="Moon Garden",
        size_id="square-20",
        spread_count=4,
        customer_name="Dana Levi",
        customer_phone="+972-50-000-0000",
    )


@pytest.fixture
def blueprint() -> Blueprint:
    return Blueprint.from_mapping(BLUEPRINT_DATA)


@pytest.fixture
def spread_plan() -> SpreadPlan:
    return SpreadPlan.from_mapping(PLAN_DATA)


@pytest.fixture
def story_service(blueprint, spread_plan) -> FakeStoryService:
    return FakeStoryService(blueprint, spread_plan, PROMPTS)


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def sleep(sleeps):
    return sleeps.append


@pytest.fixture
def settings() -> ProductionSettings:
    # Low resolution keeps the rasters small.
    return ProductionSettings(dpi=60, inter_call_delay_seconds=0.0, retry_backoff_seconds=0.0)


@pytest.fixture
def style_lock() -> StyleLock:
    return StyleLock(description="Soft watercolour, warm evening light.", seed=7)


@pytest.fixture
def character_lock() -> CharacterLock:
    return CharacterLock(name="Maya", traits={"hair": "curly"})


@pytest.fixture
def session(story_request, product) -> ProductionSession:
    return ProductionSession(
        order_id=ORDER_ID,
        request=story_request,
        product=product,
        style_guide="Soft watercolour",
    )


@pytest.fixture
def approved_session(session, blueprint, spread_plan) -> ProductionSession:
    session.artifacts.update(
        {
            "skeleton": blueprint,
            "narrative": blueprint,
            "visual_plan": spread_plan,
            "visual_audit": spread_plan,
            "prompts": list(PROMPTS),
            "prompt_audit": list(PROMPTS),
        }
    )
    return session
