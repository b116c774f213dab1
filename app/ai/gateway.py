"""
Project Task Assistant
LLM Gateway.

Provider-agnostic LLM router with:
    - Multi-provider support (Anthropic Claude, OpenAI, Gemini)
    - Auto-retry with exponential backoff
    - Per-call timeouts passed through to the provider SDKs
    - AssistantLLM: the narrow capability the project assistant consumes
      (strict-JSON plans / short text answers), returning LLMResult values
      instead of raising, so every call site keeps a deterministic fallback

Usage:
    from app.ai.gateway import LLMGateway, AssistantLLM
    gw = LLMGateway()
    llm = AssistantLLM(gw, model="claude-3-5-haiku-20241022", timeout=8)
    result = llm.classify_or_plan(messages)
    if result.ok:
        plan = result.value
"""

import json
import logging
import os
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class LLMTimeoutError(RuntimeError):
    """The provider did not answer within the caller's timeout."""


def _is_timeout(exc: Exception) -> bool:
    # anthropic.APITimeoutError, openai.APITimeoutError, httpx.ReadTimeout, ...
    return isinstance(exc, (TimeoutError, LLMTimeoutError)) or "timeout" in type(exc).__name__.lower()


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, timeout (seconds).

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
                self._client = anthropic.Anthropic(api_key=self.api_key, max_retries=0)
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        # Anthropic takes the system prompt separately
        system_parts = []
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 1024),
            "temperature": kwargs.get("temperature", 0.1),
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)
        if kwargs.get("timeout"):
            params["timeout"] = kwargs["timeout"]

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    def __init__(self):
        self.api_key = os.getenv("OPENAI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                self._client = openai.OpenAI(api_key=self.api_key, max_retries=0)
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        params = {
            "model": model,
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", 1024),
            "temperature": kwargs.get("temperature", 0.1),
        }
        if kwargs.get("timeout"):
            params["timeout"] = kwargs["timeout"]
        if kwargs.get("json_mode"):
            params["response_format"] = {"type": "json_object"}

        response = client.chat.completions.create(**params)
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── Google Gemini Provider ───────────────────────────────────────────────────

class GeminiProvider(LLMProvider):
    """
    Google Gemini API provider.

    Environment:
        GEMINI_API_KEY — obtain at https://aistudio.google.com/apikey
    """

    def __init__(self):
        self.api_key = os.getenv("GEMINI_API_KEY", "")
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                from google import genai
                self._client = genai.Client(api_key=self.api_key)
            except ImportError:
                raise RuntimeError(
                    "google-genai package not installed. Run: pip install google-genai"
                )
        return self._client

    def chat(self, messages: list, model: str = "gemini-2.5-flash", **kwargs) -> dict:
        client = self._get_client()
        from google.genai import types

        system_parts = []
        contents = []
        for m in messages:
            if m["role"] == "system":
                system_parts.append(m["content"])
            else:
                # Gemini uses "user" and "model" roles
                role = "model" if m["role"] == "assistant" else "user"
                contents.append(
                    types.Content(
                        role=role,
                        parts=[types.Part(text=m["content"])],
                    )
                )

        config = types.GenerateContentConfig(
            temperature=kwargs.get("temperature", 0.1),
            max_output_tokens=kwargs.get("max_tokens", 1024),
        )
        if system_parts:
            config.system_instruction = "\n\n".join(system_parts)
        if kwargs.get("timeout"):
            # HttpOptions.timeout is in milliseconds
            config.http_options = types.HttpOptions(timeout=int(kwargs["timeout"] * 1000))
        if kwargs.get("json_mode"):
            config.response_mime_type = "application/json"

        response = client.models.generate_content(
            model=model,
            contents=contents,
            config=config,
        )

        prompt_tokens = getattr(response.usage_metadata, "prompt_token_count", 0) or 0
        completion_tokens = getattr(response.usage_metadata, "candidates_token_count", 0) or 0

        return {
            "content": response.text or "",
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "model": model,
        }


# ══════════════════════════════════════════════════════════════════════════════
# LLM Gateway
# ══════════════════════════════════════════════════════════════════════════════

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name
        - Auto-retry with exponential backoff, bounded by the call timeout
        - Usage logging

    Usage:
        gw = LLMGateway()
        result = gw.chat(
            messages=[{"role": "user", "content": "..."}],
            model="claude-3-5-haiku-20241022",
            purpose="assistant_plan",
            timeout=8,
        )
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        # Google Gemini
        "gemini-2.5-flash": "gemini",
        "gemini-2.5-pro": "gemini",
        "gemini-2.0-flash": "gemini",
    }

    # Unlisted models are routed by name prefix
    PREFIX_MAP = (
        ("claude", "anthropic"),
        ("gpt", "openai"),
        ("o1", "openai"),
        ("o3", "openai"),
        ("gemini", "gemini"),
    )

    DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    PROVIDER_CLASSES = {
        "anthropic": (AnthropicProvider, "ANTHROPIC_API_KEY"),
        "openai": (OpenAIProvider, "OPENAI_API_KEY"),
        "gemini": (GeminiProvider, "GEMINI_API_KEY"),
    }

    def __init__(self, providers: dict | None = None):
        self._providers = dict(providers) if providers is not None else {}
        if providers is None:
            self._init_providers()

    def _init_providers(self):
        """Register real providers for which an API key is present."""
        for name, (cls, env_key) in self.PROVIDER_CLASSES.items():
            if os.getenv(env_key):
                self._providers[name] = cls()

    def provider_name_for(self, model: str) -> str | None:
        name = self.PROVIDER_MAP.get(model)
        if name:
            return name
        lower = (model or "").lower()
        for prefix, provider_name in self.PREFIX_MAP:
            if lower.startswith(prefix):
                return provider_name
        return None

    def is_available(self, model: str | None = None) -> bool:
        """True when the provider serving ``model`` is registered."""
        return self.provider_name_for(model or self.DEFAULT_CHAT_MODEL) in self._providers

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        provider_name = self.provider_name_for(model)
        if provider_name not in self._providers:
            raise RuntimeError(f"No LLM provider available for model '{model}' (missing API key?)")
        return self._providers[provider_name], provider_name

    def chat(
        self,
        messages: list,
        model: str | None = None,
        *,
        purpose: str = "",
        max_retries: int = 2,
        timeout: float | None = None,
        **kwargs,
    ) -> dict:
        """
        Send a chat completion request with retry.

        Args:
            messages: Chat messages.
            model: Model identifier (defaults to DEFAULT_CHAT_MODEL).
            purpose: What the call is for (e.g. "assistant_plan"). Logged only.
            max_retries: Number of attempts on failure.
            timeout: Overall budget in seconds; also passed to the provider.
            **kwargs: temperature, max_tokens, json_mode passed to provider.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}

        Raises:
            LLMTimeoutError: the budget ran out.
            RuntimeError: all attempts failed.
        """
        model = model or self.DEFAULT_CHAT_MODEL
        provider, provider_name = self._get_provider(model)
        deadline = time.monotonic() + timeout if timeout else None

        last_error = None
        for attempt in range(1, max_retries + 1):
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
            start_time = time.monotonic()
            try:
                result = provider.chat(messages, model, timeout=remaining, **kwargs)
                result["latency_ms"] = int((time.monotonic() - start_time) * 1000)
                result["provider"] = provider_name
                logger.info(
                    "LLM call ok: purpose=%s provider=%s model=%s tokens=%s latency=%sms",
                    purpose, provider_name, model,
                    result.get("prompt_tokens", 0) + result.get("completion_tokens", 0),
                    result["latency_ms"],
                )
                return result
            except Exception as e:
                last_error = e
                logger.warning("LLM call attempt %d/%d failed (%s): %s",
                               attempt, max_retries, purpose, e)
                if _is_timeout(e):
                    break
                if attempt < max_retries:
                    backoff = min(2 ** (attempt - 1), 4)
                    if deadline is not None:
                        backoff = min(backoff, max(deadline - time.monotonic(), 0))
                    time.sleep(backoff)

        if last_error is None or _is_timeout(last_error) or (
            deadline is not None and time.monotonic() >= deadline
        ):
            raise LLMTimeoutError(f"LLM call timed out after {timeout}s ({purpose})")
        raise RuntimeError(f"LLM call failed after {max_retries} retries: {last_error}")


# ══════════════════════════════════════════════════════════════════════════════
# Assistant capability
# ══════════════════════════════════════════════════════════════════════════════

@dataclass
class LLMResult:
    """Outcome of a best-effort LLM call: a value, or an error tag."""

    ok: bool
    value: Any = None
    error: str | None = None

    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"

    @classmethod
    def success(cls, value) -> "LLMResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "LLMResult":
        return cls(ok=False, error=error)


def parse_json_object(content: str) -> dict | None:
    """Parse an LLM JSON reply, tolerating markdown fences and surrounding prose."""
    if not content:
        return None
    cleaned = content.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```\w*\n?", "", cleaned)
        cleaned = re.sub(r"\n?```$", "", cleaned)

    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    # Extract the first balanced {...} block from mixed text
    start = cleaned.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i, ch in enumerate(cleaned[start:], start):
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    try:
                        parsed = json.loads(cleaned[start:i + 1])
                        return parsed if isinstance(parsed, dict) else None
                    except json.JSONDecodeError:
                        break
        start = cleaned.find("{", start + 1)
    return None


class AssistantLLM:
    """
    The two LLM capabilities the project assistant may use.

        classify_or_plan(messages) → LLMResult[dict]   strict JSON object
        answer_text(messages)      → LLMResult[str]    short free text

    Neither method raises. A disabled capability (no provider, or turned off
    in config) answers every call with ``LLMResult.failure("unavailable")``.
    """

    def __init__(self, gateway: LLMGateway | None = None, *, model: str | None = None,
                 enabled: bool = True, timeout: float = 8.0):
        self.gateway = gateway
        self.model = model
        self.timeout = timeout
        self._enabled = enabled

    @classmethod
    def from_config(cls, config, gateway: LLMGateway | None = None) -> "AssistantLLM":
        enabled = bool(config.get("ASSISTANT_LLM_ENABLED", False))
        return cls(
            gateway if gateway is not None else (LLMGateway() if enabled else None),
            model=config.get("ASSISTANT_LLM_MODEL"),
            enabled=enabled,
            timeout=float(config.get("ASSISTANT_LLM_TIMEOUT", 8.0)),
        )

    @property
    def enabled(self) -> bool:
        return self._enabled and self.gateway is not None and self.gateway.is_available(self.model)

    def _call(self, messages: list, purpose: str, timeout: float | None, **kwargs) -> LLMResult:
        if not self.enabled:
            return LLMResult.failure(LLMResult.UNAVAILABLE)
        try:
            response = self.gateway.chat(
                messages=messages,
                model=self.model,
                purpose=purpose,
                max_retries=1,
                timeout=timeout or self.timeout,
                **kwargs,
            )
        except LLMTimeoutError as e:
            logger.warning("Assistant LLM timed out (%s): %s", purpose, e)
            return LLMResult.failure(LLMResult.TIMEOUT)
        except Exception as e:
            logger.warning("Assistant LLM call failed (%s): %s", purpose, e)
            return LLMResult.failure(LLMResult.TIMEOUT if _is_timeout(e) else LLMResult.FAILED)
        return LLMResult.success(response.get("content") or "")

    def classify_or_plan(self, messages: list, *, timeout: float | None = None,
                         purpose: str = "assistant_plan") -> LLMResult:
        result = self._call(messages, purpose, timeout, temperature=0.0, json_mode=True)
        if not result.ok:
            return result
        parsed = parse_json_object(result.value)
        if parsed is None:
            logger.info("Assistant LLM returned non-JSON content (%s)", purpose)
            return LLMResult.failure(LLMResult.MALFORMED)
        return LLMResult.success(parsed)

    def answer_text(self, messages: list, *, timeout: float | None = None,
                    max_chars: int = 800, purpose: str = "assistant_answer") -> LLMResult:
        result = self._call(messages, purpose, timeout, temperature=0.2, max_tokens=400)
        if not result.ok:
            return result
        text = (result.value or "").strip()
        if not text:
            return LLMResult.failure(LLMResult.MALFORMED)
        return LLMResult.success(text[: max_chars * 2])
