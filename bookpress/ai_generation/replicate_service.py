"""
Integration with Replicate for spread and cover illustration rendering.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable as IterableABC
from contextlib import ExitStack
from pathlib import Path
from typing import Any, BinaryIO, Callable, Protocol

import httpx
import replicate
import requests
from replicate.exceptions import ModelError, ReplicateError

from bookpress.common import PermanentGenerationError, TransientGenerationError

from .prompting import CharacterLock, IllustrationPrompt, StyleLock, build_illustration_prompt

logger = logging.getLogger(__name__)


class IllustrationRenderer(Protocol):
    """Renders one illustration and returns the encoded raster bytes."""

    def render_illustration(
        self,
        prompt: str,
        style_lock: StyleLock,
        character_lock: CharacterLock,
        age: int | None,
    ) -> bytes: ...


def _build_flux_kontext_input(
    *,
    prompt: IllustrationPrompt,
    image_input: str | BinaryIO | None,
    aspect_ratio: str,
    seed: int | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt.positive,
        "output_format": "png",
        "safety_tolerance": 2,
        "prompt_upsampling": False,
        "aspect_ratio": aspect_ratio,
    }
    if image_input is not None:
        payload["input_image"] = image_input
    if seed is not None:
        payload["seed"] = seed
    return payload


def _build_flux_dev_input(
    *,
    prompt: IllustrationPrompt,
    image_input: str | BinaryIO | None,
    aspect_ratio: str,
    seed: int | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt.positive,
        "negative_prompt": prompt.negative,
        "output_format": "png",
        "aspect_ratio": aspect_ratio,
        "guidance": 3.5,
    }
    if image_input is not None:
        payload["image"] = image_input
    if seed is not None:
        payload["seed"] = seed
    return payload


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "black-forest-labs/flux-kontext-max": _build_flux_kontext_input,
    "black-forest-labs/flux-dev": _build_flux_dev_input,
}

DEFAULT_MODEL = "black-forest-labs/flux-kontext-pro"


def _input_builder(model_identifier: str) -> Callable[..., dict[str, Any]]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier.split(":", maxsplit=1)[0])
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            f"Model identifier '{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )
    return builder


class ReplicateIllustrationRenderer:
    """
    Illustration renderer backed by a Replicate image model.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN``.
    model_identifier:
        ``owner/model[:version]``. Falls back to ``REPLICATE_MODEL`` and then
        to the Flux Kontext model.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    aspect_ratio:
        Aspect ratio requested for every render. Spreads are 16:9 panoramas;
        the layout engine aspect-fills the result onto the physical geometry.
    download_timeout:
        Seconds allowed for fetching a URL output.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        model_identifier: str | None = None,
        client: replicate.Client | None = None,
        aspect_ratio: str = "16:9",
        download_timeout: float = 60.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )

        self._model_identifier = (
            model_identifier or os.getenv("REPLICATE_MODEL") or DEFAULT_MODEL
        )
        self._build_input = _input_builder(self._model_identifier)
        self._client = client or replicate.Client(api_token=self._api_token)
        self._aspect_ratio = aspect_ratio
        self._download_timeout = download_timeout

    @property
    def model_identifier(self) -> str:
        """Return the model identifier currently used."""
        return self._model_identifier

    def render_illustration(
        self,
        prompt: str,
        style_lock: StyleLock,
        character_lock: CharacterLock,
        age: int | None,
    ) -> bytes:
        """
        Render one illustration and return its encoded bytes.

        Raises
        ------
        TransientGenerationError
            Rate limiting, 5xx responses and network failures.
        PermanentGenerationError
            Model failures, rejected input and empty outputs.
        """
        full_prompt = build_illustration_prompt(prompt, style_lock, character_lock, age)

        with ExitStack() as stack:
            image_input = None
            if character_lock.reference_image is not None:
                image_input = _prepare_image_input(character_lock.reference_image, stack=stack)

            replicate_input = self._build_input(
                prompt=full_prompt,
                image_input=image_input,
                aspect_ratio=self._aspect_ratio,
                seed=style_lock.seed,
            )

            try:
                outputs = self._client.run(self._model_identifier, input=replicate_input)
            except ModelError as exc:
                raise PermanentGenerationError(f"Illustration model failed: {exc}") from exc
            except ReplicateError as exc:
                status = getattr(exc, "status", None)
                if status == 429 or (status is not None and status >= 500):
                    raise TransientGenerationError(f"Replicate unavailable ({status}): {exc}") from exc
                raise PermanentGenerationError(f"Replicate rejected the request: {exc}") from exc
            except httpx.TransportError as exc:
                raise TransientGenerationError(f"Could not reach Replicate: {exc}") from exc

        return self._read_first_output(outputs)

    def _read_first_output(self, outputs: Any) -> bytes:
        if hasattr(outputs, "read"):
            return outputs.read()

        for item in _iter_outputs(outputs):
            if hasattr(item, "read"):
                return item.read()
            if isinstance(item, (bytes, bytearray)):
                return bytes(item)
            url = str(item)
            if url.lower().startswith(("http://", "https://")):
                return self._download(url)

        raise PermanentGenerationError("Illustration model returned no image output.")

    def _download(self, url: str) -> bytes:
        logger.debug("Downloading illustration from %s", url)
        try:
            response = requests.get(url, timeout=self._download_timeout)
            response.raise_for_status()
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise TransientGenerationError(f"Could not download illustration: {exc}") from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status is not None and (status == 429 or status >= 500):
                raise TransientGenerationError(f"Illustration download failed ({status}).") from exc
            raise PermanentGenerationError(f"Illustration download failed ({status}).") from exc
        return response.content


def _iter_outputs(raw: Any):
    if raw is None:
        return
    if isinstance(raw, (str, bytes, bytearray)):
        yield raw
        return
    if isinstance(raw, dict):
        for key in ("image", "images", "output", "url", "urls"):
            if key in raw:
                yield from _iter_outputs(raw[key])
        return
    if isinstance(raw, IterableABC):
        for item in raw:
            yield from _iter_outputs(item)
        return
    yield raw


def _prepare_image_input(
    input_image: str | Path | BinaryIO,
    *,
    stack: ExitStack,
) -> str | BinaryIO:
    """
    Normalize the image input so Replicate can consume it, keeping resources open via ExitStack.
    """
    if hasattr(input_image, "read"):
        return input_image  # type: ignore[return-value]

    if isinstance(input_image, Path):
        input_path = input_image.expanduser()
    else:
        input_candidate = str(input_image)
        if input_candidate.lower().startswith(("http://", "https://")):
            return input_candidate
        input_path = Path(input_candidate).expanduser()

    if not input_path.exists():
        raise PermanentGenerationError(f"Reference image not found at '{input_path}'.")

    return stack.enter_context(input_path.open("rb"))
