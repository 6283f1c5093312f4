"""
Artifacts exchanged between the content-generation stages.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

RTL_LANGUAGES = frozenset({"ar", "arabic", "he", "hebrew", "fa", "persian", "farsi", "ur", "urdu"})


class Side(str, Enum):
    """Physical half of a spread or unfolded cover."""

    LEFT = "left"
    RIGHT = "right"

    @property
    def opposite(self) -> "Side":
        return Side.RIGHT if self is Side.LEFT else Side.LEFT

    @classmethod
    def parse(cls, value: Any) -> "Side":
        if isinstance(value, Side):
            return value
        text = str(value or "").strip().lower()
        if "left" in text:
            return cls.LEFT
        if "right" in text:
            return cls.RIGHT
        raise ValueError(f"Expected 'Left' or 'Right', got {value!r}.")


class WritingDirection(str, Enum):
    LEFT_TO_RIGHT = "ltr"
    RIGHT_TO_LEFT = "rtl"

    @property
    def flipped(self) -> "WritingDirection":
        if self is WritingDirection.LEFT_TO_RIGHT:
            return WritingDirection.RIGHT_TO_LEFT
        return WritingDirection.LEFT_TO_RIGHT

    @property
    def is_rtl(self) -> bool:
        return self is WritingDirection.RIGHT_TO_LEFT

    @classmethod
    def from_language(cls, language: str | None) -> "WritingDirection":
        code = (language or "").strip().lower().replace("_", "-").split("-")[0]
        return cls.RIGHT_TO_LEFT if code in RTL_LANGUAGES else cls.LEFT_TO_RIGHT


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class BlueprintSpread:
    spread_number: int
    narrative: str

    def to_dict(self) -> dict[str, Any]:
        return {"spread_number": self.spread_number, "narrative": self.narrative}


@dataclass(frozen=True)
class Blueprint:
    """
    Story skeleton: the title, the story foundation, the setting used for the
    cover, and one narrative beat per spread.
    """

    title: str
    setting: str
    spreads: tuple[BlueprintSpread, ...]
    foundation: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Blueprint":
        if not isinstance(data, Mapping):
            raise ValueError("Blueprint payload must be a mapping.")

        foundation_raw = data.get("foundation") or {}
        if not isinstance(foundation_raw, Mapping):
            raise ValueError("Blueprint 'foundation' must be a mapping.")

        structure = data.get("structure")
        spreads_raw = data.get("spreads")
        if spreads_raw is None and isinstance(structure, Mapping):
            spreads_raw = structure.get("spreads")
        spreads = tuple(_blueprint_spreads(spreads_raw))
        if not spreads:
            raise ValueError("Blueprint must contain at least one spread.")

        title = _text(data.get("title") or foundation_raw.get("title"))
        if not title:
            raise ValueError("Blueprint must include a title.")

        return cls(
            title=title,
            setting=_text(data.get("setting") or foundation_raw.get("setting")),
            spreads=spreads,
            foundation={str(k): _text(v) for k, v in foundation_raw.items() if _text(v)},
        )

    @property
    def spread_count(self) -> int:
        return len(self.spreads)

    def narrative_for(self, spread_number: int) -> str:
        for spread in self.spreads:
            if spread.spread_number == spread_number:
                return spread.narrative
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "setting": self.setting,
            "foundation": dict(self.foundation),
            "spreads": [spread.to_dict() for spread in self.spreads],
        }


def _blueprint_spreads(raw: Any) -> Iterable[BlueprintSpread]:
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        raise ValueError("Blueprint 'spreads' must be a list.")
    for expected, item in enumerate(raw, start=1):
        if not isinstance(item, Mapping):
            raise ValueError(f"Invalid blueprint spread payload: {item!r}")
        number = int(item.get("spread_number") or item.get("spreadNumber") or expected)
        if number != expected:
            raise ValueError("Blueprint spread numbers must be sequential starting from 1.")
        narrative = _text(item.get("narrative") or item.get("text"))
        if not narrative:
            raise ValueError(f"Blueprint spread {number} has no narrative text.")
        yield BlueprintSpread(spread_number=number, narrative=narrative)


@dataclass(frozen=True)
class SpreadDirective:
    """One spread of the visual plan."""

    spread_number: int
    key_actions: str
    main_content_side: Side
    setting: str = ""
    mood: str = ""
    props: str = ""
    continuity_notes: str = ""

    @property
    def text_side(self) -> Side:
        return self.main_content_side.opposite

    def to_dict(self) -> dict[str, Any]:
        return {
            "spread_number": self.spread_number,
            "key_actions": self.key_actions,
            "main_content_side": self.main_content_side.value.capitalize(),
            "setting": self.setting,
            "mood": self.mood,
            "props": self.props,
            "continuity_notes": self.continuity_notes,
        }


@dataclass(frozen=True)
class SpreadPlan:
    """Ordered per-spread visual directives plus the anchors kept constant across spreads."""

    spreads: tuple[SpreadDirective, ...]
    visual_anchors: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for expected, spread in enumerate(self.spreads, start=1):
            if spread.spread_number != expected:
                raise ValueError("Spread numbers must be sequential starting from 1.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SpreadPlan":
        if not isinstance(data, Mapping):
            raise ValueError("Spread plan payload must be a mapping.")
        raw_spreads = data.get("spreads")
        if not isinstance(raw_spreads, Sequence) or isinstance(raw_spreads, (str, bytes)) or not raw_spreads:
            raise ValueError("Spread plan must contain a non-empty 'spreads' list.")

        spreads: list[SpreadDirective] = []
        for expected, item in enumerate(raw_spreads, start=1):
            if not isinstance(item, Mapping):
                raise ValueError(f"Invalid spread directive payload: {item!r}")
            spreads.append(
                SpreadDirective(
                    spread_number=int(item.get("spread_number") or item.get("spreadNumber") or expected),
                    key_actions=_text(item.get("key_actions") or item.get("keyActions")),
                    main_content_side=Side.parse(
                        item.get("main_content_side") or item.get("mainContentSide")
                    ),
                    setting=_text(item.get("setting")),
                    mood=_text(item.get("mood")),
                    props=_text(item.get("props")),
                    continuity_notes=_text(item.get("continuity_notes") or item.get("continuityNotes")),
                )
            )

        anchors_raw = data.get("visual_anchors") or data.get("visualAnchors") or {}
        anchors = (
            {str(k): _text(v) for k, v in anchors_raw.items() if _text(v)}
            if isinstance(anchors_raw, Mapping)
            else {}
        )
        return cls(spreads=tuple(spreads), visual_anchors=anchors)

    def __len__(self) -> int:
        return len(self.spreads)

    def __iter__(self):
        return iter(self.spreads)

    def to_dict(self) -> dict[str, Any]:
        return {
            "visual_anchors": dict(self.visual_anchors),
            "spreads": [spread.to_dict() for spread in self.spreads],
        }
