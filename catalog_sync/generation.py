"""AI-assisted product copy through an OpenAI-compatible chat endpoint.

This is the only write path with automatic retries: rate limiting, 5xx
responses and network failures are retried with linearly growing pauses.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings
from catalog_sync.errors import MutationFailed, RequestTimeout
from catalog_sync.http_client import (
    AsyncCircuitBreaker,
    CircuitBreakerOpenError,
    RetryableStatusError,
    async_http_client,
    request_with_retries,
)

log = logging.getLogger("generation")

SYSTEM_PROMPT = (
    "You write e-commerce product copy. Reply with a single JSON object with the keys "
    '"title", "subtitle", "gender", "highlight", "about" and "description". '
    '"title" is the clean product name without subtitle or gender. '
    '"subtitle" describes material, cut and use in 10-20 words. '
    '"gender" is one of Hombre, Mujer, Unisex, Niños. '
    '"highlight" is a 2-4 word selling point. '
    '"about" is 80-120 words of plain text with line breaks and no markdown. '
    '"description" is HTML using <h3> headings and <strong> for bold, never **.'
)


@dataclass(frozen=True, slots=True)
class GeneratedContent:
    title: str = ""
    subtitle: str = ""
    gender: str = ""
    highlight: str = ""
    about: str = ""
    description: str = ""

    @classmethod
    def from_reply(cls, text: str) -> "GeneratedContent":
        """Parse the model reply; anything that is not a JSON object becomes the description."""

        try:
            data = json.loads(_strip_code_fence(text))
        except ValueError:
            return cls(description=text)
        if not isinstance(data, dict):
            return cls(description=text)
        return cls(**{name: str(data.get(name) or "").strip() for name in cls.__dataclass_fields__})

    @property
    def combined_title(self) -> str:
        if self.title and self.subtitle:
            return f"{self.title}{settings.TITLE_SEPARATOR}{self.subtitle}"
        return self.title or self.subtitle


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def build_prompt(product: CatalogProduct) -> str:
    options = "\n".join(f"{option.name}: {', '.join(option.values)}" for option in product.options)
    lines = [f"Current title: {product.title}"]
    if options:
        lines.append(f"Options:\n{options}")
    if product.description:
        lines.append(f"Current description:\n{product.description[:2000]}")
    image_urls = [image.url for image in product.images[:3]]
    if image_urls:
        lines.append("Images:\n" + "\n".join(image_urls))
    return "\n\n".join(lines)


GENERATION_CIRCUIT_BREAKER = AsyncCircuitBreaker(
    max_failures=settings.HTTP_CIRCUIT_BREAKER_MAX_FAILURES,
    base_delay=settings.HTTP_CIRCUIT_BREAKER_BASE_DELAY,
    max_delay=settings.HTTP_CIRCUIT_BREAKER_MAX_DELAY,
    name="generation",
)


class ContentGenerator:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        circuit_breaker: AsyncCircuitBreaker | None = GENERATION_CIRCUIT_BREAKER,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self.base_url = base_url or settings.OPENAI_BASE
        self.model = model or settings.OPENAI_MODEL
        self._transport = transport
        self._circuit_breaker = circuit_breaker

    async def generate(self, product: CatalogProduct) -> GeneratedContent:
        if not self.api_key:
            raise MutationFailed(product.id, "generation API key is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(product)},
            ],
            "temperature": 0.7,
            "response_format": {"type": "json_object"},
        }
        options = {"transport": self._transport} if self._transport is not None else None
        try:
            async with async_http_client(
                base_url=self.base_url,
                timeout=settings.GENERATION_TIMEOUT,
                additional_options=options,
            ) as client:
                response = await request_with_retries(
                    "POST",
                    "/chat/completions",
                    client=client,
                    circuit_breaker=self._circuit_breaker,
                    retries=settings.GENERATION_RETRY_ATTEMPTS,
                    backoff_factor=settings.GENERATION_RETRY_BACKOFF,
                    linear=True,
                    retry_statuses=settings.GENERATION_RETRY_STATUS_CODES,
                    headers=headers,
                    json=body,
                )
        except CircuitBreakerOpenError as exc:
            raise MutationFailed(product.id, "generation service temporarily unavailable", cause=exc) from exc
        except httpx.TimeoutException as exc:
            timed_out = RequestTimeout("generate", settings.GENERATION_TIMEOUT)
            raise MutationFailed(product.id, str(timed_out), cause=timed_out) from exc
        except RetryableStatusError as exc:
            raise MutationFailed(product.id, f"HTTP {exc.response.status_code} after retries", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise MutationFailed(product.id, f"generation request failed: {exc}", cause=exc) from exc

        if response.is_error:
            raise MutationFailed(product.id, f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise MutationFailed(product.id, "malformed generation response", cause=exc) from exc
        if not text or not str(text).strip():
            raise MutationFailed(product.id, "empty generation response")

        log.info("content generated product=%s", product.id)
        return GeneratedContent.from_reply(str(text))


async def generate_product_content(product: CatalogProduct) -> GeneratedContent:
    return await ContentGenerator().generate(product)


__all__ = [
    "ContentGenerator",
    "GeneratedContent",
    "build_prompt",
    "generate_product_content",
]
