"""
Structured representation of the order details collected by the wizard.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .models import WritingDirection


def _normalize_interests(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()

    if isinstance(value, str):
        parts = [item.strip() for item in value.split(",")]
    elif isinstance(value, Sequence):
        parts = [str(item).strip() for item in value]
    else:
        raise TypeError("interests must be a string or sequence of strings.")

    return tuple(filter(None, parts))


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None

    text = str(value).strip()
    return text or None


def _coerce_optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None

    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected an integer-compatible value for age, got {value!r}") from exc


@dataclass(frozen=True)
class StoryRequest:
    """
    Canonical representation of one book order.

    Attributes
    ----------
    child_name:
        Hero's name (required).
    child_age:
        Age in years. Drives font sizing and the illustration age lock.
    language:
        Language code of the story text (``en``, ``ar``...). Decides the
        writing direction.
    title:
        Book title chosen in the wizard. Personalised with the child's name
        for the cover when it does not already contain it.
    theme:
        Adventure theme.
    size_id:
        Product catalog id of the physical book size.
    spread_count:
        Number of illustrated spreads to plan.
    customer_name / customer_phone:
        Buyer details carried into the manifest.
    """

    child_name: str
    child_age: int | None = None
    gender: str | None = None
    language: str = "en"
    title: str | None = None
    theme: str | None = None
    size_id: str | None = None
    spread_count: int | None = None
    interests: tuple[str, ...] = ()
    custom_challenge: str | None = None
    illustration_notes: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StoryRequest":
        """
        Build a request from a dict-like object (e.g., parsed JSON/YAML).
        """
        name = data.get("child_name") or data.get("childName") or data.get("name")
        if not name or not str(name).strip():
            raise ValueError("Order data must include a non-empty 'child_name' field.")

        spread_count = _coerce_optional_int(data.get("spread_count") or data.get("spreads"))
        if spread_count is not None and spread_count < 1:
            raise ValueError("spread_count must be at least 1.")

        return cls(
            child_name=str(name).strip(),
            child_age=_coerce_optional_int(data.get("child_age") or data.get("childAge") or data.get("age")),
            gender=_coerce_optional_str(data.get("gender")),
            language=_coerce_optional_str(data.get("language")) or "en",
            title=_coerce_optional_str(data.get("title")),
            theme=_coerce_optional_str(data.get("theme")),
            size_id=_coerce_optional_str(data.get("size_id") or data.get("size")),
            spread_count=spread_count,
            interests=_normalize_interests(data.get("interests") or data.get("hobbies")),
            custom_challenge=_coerce_optional_str(data.get("custom_challenge") or data.get("customChallenge")),
            illustration_notes=_coerce_optional_str(
                data.get("illustration_notes") or data.get("customIllustrationNotes")
            ),
            customer_name=_coerce_optional_str(data.get("customer_name")),
            customer_phone=_coerce_optional_str(data.get("customer_phone")),
        )

    @property
    def writing_direction(self) -> WritingDirection:
        return WritingDirection.from_language(self.language)

    def display_title(self, fallback: str | None = None) -> str:
        """
        Cover title, prefixed with the child's name when it is not already in it.
        """
        title = self.title or fallback or "Adventure"
        if self.child_name.lower() in title.lower():
            return title
        return f"{self.child_name}'s {title}"

    def context_bullets(self) -> list[str]:
        bullets: list[str] = [f"Child name: {self.child_name}"]

        if self.child_age is not None:
            bullets.append(f"Age: {self.child_age}")

        if self.gender:
            bullets.append(f"Gender: {self.gender}")

        if self.theme:
            bullets.append(f"Theme: {self.theme}")

        if self.title:
            bullets.append(f"Working title: {self.title}")

        if self.interests:
            bullets.append(f"Interests: {', '.join(self.interests)}")

        if self.custom_challenge:
            bullets.append(f"Challenge to overcome: {self.custom_challenge}")

        if self.illustration_notes:
            bullets.append(f"Illustration notes: {self.illustration_notes}")

        bullets.append(f"Story language: {self.language}")
        return bullets

    def summary_for_prompt(self) -> str:
        return "\n".join(f"- {line}" for line in self.context_bullets())

    def to_dict(self) -> dict[str, Any]:
        return {
            "child_name": self.child_name,
            "child_age": self.child_age,
            "gender": self.gender,
            "language": self.language,
            "title": self.title,
            "theme": self.theme,
            "size_id": self.size_id,
            "spread_count": self.spread_count,
            "interests": list(self.interests),
            "custom_challenge": self.custom_challenge,
            "illustration_notes": self.illustration_notes,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
        }
