"""
Prompt construction for spread and cover illustrations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from bookpress.story_generation import Side, SpreadDirective

NEGATIVE_PROMPT = (
    "identity drift, age change, plastic skin, uncanny valley, harsh shadows, blown highlights, "
    "excessive stylization, obscured face, cluttered background, watermark, text, letters, logo"
)


@dataclass(frozen=True)
class StyleLock:
    """
    Technical style guide applied unchanged to every illustration of a book.
    """

    description: str
    negative_prompt: str = NEGATIVE_PROMPT
    seed: int | None = None


@dataclass(frozen=True)
class CharacterLock:
    """
    What keeps the hero recognisable across calls: a reference photo and the
    traits the visual plan fixed.
    """

    name: str
    reference_image: str | Path | None = None
    traits: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IllustrationPrompt:
    """Container for the positive and negative prompts passed to the image model."""

    positive: str
    negative: str = NEGATIVE_PROMPT


def spread_scene_prompt(prompt: str, directive: SpreadDirective) -> str:
    """
    Attach the spread's layout constraint to its audited scene prompt.

    The hero and action stay on ``directive.main_content_side``; the text side
    is kept as calm negative space because text is printed over it.
    """
    if not prompt or not prompt.strip():
        raise ValueError("prompt must be a non-empty string.")

    main = directive.main_content_side.value.upper()
    text = directive.text_side.value.upper()
    lines = [
        prompt.strip(),
        "",
        "COMPOSITION (16:9 panoramic double page)",
        f"- Place the hero and the key action on the {main} half of the image.",
        f"- Keep the {text} half simple and low-detail: it is negative space for printed text.",
        "- Nothing important may cross the vertical centre line (book gutter).",
    ]
    if directive.setting:
        lines.append(f"- Setting: {directive.setting}")
    if directive.mood:
        lines.append(f"- Mood: {directive.mood}")
    return "\n".join(lines)


def cover_scene_prompt(setting: str, front_side: Side, *, title: str | None = None) -> str:
    """
    Build the unfolded-cover prompt.

    The hero goes on the front-cover half (right for left-to-right books,
    left for right-to-left books); the back half stays minimal.
    """
    front = front_side.value.upper()
    back = front_side.opposite.value.upper()
    lines = [
        "Wide panoramic book cover illustration, unfolded (back cover, spine, front cover).",
        f"- Place the hero, large and facing the viewer, on the {front} half: this is the front cover.",
        f"- Keep the {back} half a quiet continuation of the background: this is the back cover.",
        "- Leave the top of the front half clear for the title.",
        "- Do not draw any text, letters or logos.",
    ]
    if setting:
        lines.append(f"- World of the story: {setting}")
    if title:
        lines.append(f"- The story is called \"{title}\"; let the scene hint at it without writing it.")
    return "\n".join(lines)


def build_illustration_prompt(
    scene_prompt: str,
    style_lock: StyleLock,
    character_lock: CharacterLock,
    age: int | None,
) -> IllustrationPrompt:
    """
    Combine a scene prompt with the book-wide style and character locks.

    Parameters
    ----------
    scene_prompt:
        Scene description for this illustration (already carrying its layout constraints).
    style_lock:
        Technical style guide shared by all illustrations of the book.
    character_lock:
        Hero identity reference and fixed traits.
    age:
        Child's age, restated so the model does not drift older or younger.
    """
    if not scene_prompt or not scene_prompt.strip():
        raise ValueError("scene_prompt must be a non-empty string.")

    age_clause = f", exactly {age} years old" if age is not None else ""
    positive = f"""TASK
Create a high-definition storybook illustration of {character_lock.name}{age_clause}, preserving the child's facial identity from the reference photo.

IDENTITY LOCK (do not change)
- Keep the same face shape, eyes, nose, mouth, skin tone, hair colour/style and proportions as in the reference.
- Maintain age and ethnicity exactly. No caricature, no beautifying.
- Ignore clothing from the reference photo; wardrobe comes from the scene.

SCENE
{scene_prompt.strip()}

STYLE LOCK
{style_lock.description.strip() or "Soft, warm, print-ready storybook illustration."}

RENDERING QUALITY
- High-definition, print-ready detail suitable for large-format print."""

    traits = _normalize_note_input(character_lock.traits)
    if traits:
        positive += "\n\n" + _format_bullet_section("CHARACTER CONTINUITY", traits)

    return IllustrationPrompt(positive=positive, negative=style_lock.negative_prompt)


def _normalize_note_input(value: str | Sequence[str] | Mapping[str, str] | None) -> list[str]:
    if value is None:
        return []

    if isinstance(value, Mapping):
        items = [f"{key}: {details}" for key, details in value.items()]
    elif isinstance(value, str):
        items = [value]
    else:
        items = [str(item) for item in value]

    lines: list[str] = []
    for item in items:
        for raw in item.replace("\r", "\n").split("\n"):
            cleaned = raw.strip(" \t-•")
            if cleaned:
                lines.append(cleaned)
    return lines


def _format_bullet_section(title: str, lines: Sequence[str]) -> str:
    bullet_block = "\n".join(f"- {line}" for line in lines if line.strip())
    return f"{title}\n{bullet_block}"
