"""Tiered language-model completion with per-tier timeouts and ordered fallback."""

import asyncio
import json
import logging
import time
from collections.abc import Sequence
from typing import Any

import boto3
from openai import AsyncOpenAI

from ..config import Settings, settings
from ..models.completion import CompletionFailureKind, CompletionResult, CompletionTier, TierError
from .audit import audit_event

logger = logging.getLogger(__name__)


def extract_json_text(content: str) -> str:
    """Strip Markdown code fences some models wrap around JSON."""
    if "```json" in content:
        content = content.split("```json")[1].split("```")[0]
    elif "```" in content:
        content = content.split("```")[1].split("```")[0]
    return content.strip()


def parse_json_output(content: Any) -> Any:
    """Parse model text as JSON. Raises json.JSONDecodeError on anything else."""
    if not isinstance(content, str):
        raise json.JSONDecodeError(f"Expected text, got {type(content).__name__}", "", 0)
    return json.loads(extract_json_text(content))


def latency_class(elapsed_ms: int) -> str:
    """Bucket a latency for log aggregation."""
    if elapsed_ms < 1000:
        return "fast"
    if elapsed_ms < 3000:
        return "normal"
    return "slow"


class OpenAICompatibleBackend:
    """Chat-completions backend for OpenAI and OpenAI-compatible routers (Requesty)."""

    def __init__(self, api_key: str, base_url: str | None = None):
        self._api_key = api_key
        self._base_url = base_url
        self._client: AsyncOpenAI | None = None

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy-load the API client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def complete(self, prompt: str, model: str) -> str:
        response = await self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            raise ValueError("Empty response from completion API")
        return content


class BedrockBackend:
    """Claude on AWS Bedrock. The boto3 call is blocking, so it runs in a worker thread."""

    def __init__(self, region_name: str, max_tokens: int = 500):
        self.region_name = region_name
        self.max_tokens = max_tokens
        self._client = None

    @property
    def client(self):
        """Lazy-load the bedrock-runtime client."""
        if self._client is None:
            self._client = boto3.client("bedrock-runtime", region_name=self.region_name)
        return self._client

    def _invoke(self, prompt: str, model: str) -> str:
        response = self.client.invoke_model(
            modelId=model,
            body=json.dumps({
                "anthropic_version": "bedrock-2023-05-31",
                "max_tokens": self.max_tokens,
                "messages": [{"role": "user", "content": prompt}],
            }),
            contentType="application/json",
        )
        response_body = json.loads(response["body"].read())
        return response_body["content"][0]["text"]

    async def complete(self, prompt: str, model: str) -> str:
        return await asyncio.to_thread(self._invoke, prompt, model)


def build_default_tiers(config: Settings = settings) -> list[CompletionTier]:
    """
    Build the fallback chain from configuration.

    A tier is present only when its credentials/flag are configured. Order:
    Requesty router, OpenAI, Bedrock.
    """
    tiers: list[CompletionTier] = []
    if config.requesty_api_key:
        tiers.append(CompletionTier(
            name="requesty",
            backend=OpenAICompatibleBackend(config.requesty_api_key, base_url=config.requesty_base_url),
            model=config.requesty_model,
            timeout_seconds=config.requesty_timeout_seconds,
        ))
    if config.openai_api_key:
        tiers.append(CompletionTier(
            name="openai",
            backend=OpenAICompatibleBackend(config.openai_api_key),
            model=config.openai_model,
            timeout_seconds=config.openai_timeout_seconds,
        ))
    if config.bedrock_enabled:
        tiers.append(CompletionTier(
            name="bedrock",
            backend=BedrockBackend(config.aws_region),
            model=config.bedrock_model_id,
            timeout_seconds=config.bedrock_timeout_seconds,
        ))
    return tiers


class TieredCompletionClient:
    """Try each tier once, in order, until one returns parseable JSON."""

    def __init__(self, tiers: Sequence[CompletionTier] = ()):
        self.tiers = list(tiers)

    async def complete(
        self,
        prompt: str,
        tiers: Sequence[CompletionTier] | None = None,
        *,
        request_id: str,
        user_id: str | None = None,
    ) -> CompletionResult:
        """
        Run the prompt through the fallback chain.

        Tiers run strictly one after another; a timeout abandons that tier's
        call and moves on. Transport errors and unparseable output are treated
        the same way. Nothing is retried within a tier.

        Args:
            prompt: Fully built prompt
            tiers: Override the client's default tiers
            request_id: Correlation id for audit events
            user_id: Acting user for audit events

        Returns:
            CompletionResult with parsed JSON, or a typed failure
        """
        chain = self.tiers if tiers is None else list(tiers)
        if not chain:
            audit_event(
                "llm_unavailable",
                "No completion tiers configured",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
            )
            return CompletionResult(success=False, failure=CompletionFailureKind.NO_TIERS)

        errors: list[TierError] = []
        for position, tier in enumerate(chain):
            is_last = position == len(chain) - 1
            audit_event(
                "llm_call_start",
                f"Attempting {tier.name} ({tier.model})",
                request_id=request_id,
                user_id=user_id,
                level=logging.DEBUG,
                tier=tier.name,
                model=tier.model,
                timeout_seconds=tier.timeout_seconds,
                is_fallback=position > 0,
            )
            started = time.perf_counter()
            try:
                text = await asyncio.wait_for(tier.backend.complete(prompt, tier.model), timeout=tier.timeout_seconds)
                data = parse_json_output(text)
            except asyncio.TimeoutError:
                kind, message = CompletionFailureKind.TIMEOUT, f"timed out after {tier.timeout_seconds}s"
            except json.JSONDecodeError as e:
                kind, message = CompletionFailureKind.MALFORMED_JSON, f"unparseable output: {e}"
            except Exception as e:
                kind, message = CompletionFailureKind.TRANSPORT_ERROR, str(e) or type(e).__name__
            else:
                elapsed_ms = int((time.perf_counter() - started) * 1000)
                audit_event(
                    "llm_call_success",
                    f"Completion handled by {tier.name}",
                    request_id=request_id,
                    user_id=user_id,
                    tier=tier.name,
                    model=tier.model,
                    elapsed_ms=elapsed_ms,
                    latency_class=latency_class(elapsed_ms),
                    is_fallback=position > 0,
                )
                return CompletionResult(success=True, data=data, tier=tier.name, elapsed_ms=elapsed_ms, errors=errors)

            elapsed_ms = int((time.perf_counter() - started) * 1000)
            errors.append(TierError(tier=tier.name, kind=kind, message=message, elapsed_ms=elapsed_ms))
            audit_event(
                "llm_call_failed",
                f"{tier.name} failed: {message}",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING if not is_last else logging.ERROR,
                tier=tier.name,
                model=tier.model,
                failure=kind.value,
                elapsed_ms=elapsed_ms,
                latency_class=latency_class(elapsed_ms),
                will_fallback=not is_last,
            )

        return CompletionResult(success=False, failure=errors[-1].kind, errors=errors)
