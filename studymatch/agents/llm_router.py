"""
LLM Router: multi-provider text generation with fallback.

Supports: Gemini (Google), GPT (OpenAI), Claude (Anthropic).
Providers without credentials are skipped; if a provider call fails the
router tries the next one in the chain.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger

from studymatch.config import Settings, settings as default_settings


class Provider(str, Enum):
    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass
class ModelSpec:
    provider: Provider
    model_id: str


MODELS: dict[str, ModelSpec] = {
    "gemini-flash": ModelSpec(Provider.GEMINI, "gemini-2.5-flash"),
    "gpt-4o-mini": ModelSpec(Provider.OPENAI, "gpt-4o-mini"),
    "claude-haiku": ModelSpec(Provider.ANTHROPIC, "claude-3-5-haiku-latest"),
}

# Openers are short and latency-bound: fastest models first
DEFAULT_CHAIN: list[str] = ["gemini-flash", "gpt-4o-mini", "claude-haiku"]


class _Clients:
    """Lazy-initialized provider clients, one set per router"""

    def __init__(self, settings: Settings, timeout: float):
        self.settings = settings
        self.timeout = timeout
        self._gemini = None
        self._openai = None
        self._anthropic = None

    def gemini(self):
        if self._gemini is None:
            from google import genai
            from google.genai import types
            self._gemini = genai.Client(
                api_key=self.settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
            )
        return self._gemini

    def openai(self):
        if self._openai is None:
            import openai
            self._openai = openai.OpenAI(api_key=self.settings.openai_api_key, timeout=self.timeout, max_retries=0)
        return self._openai

    def anthropic(self):
        if self._anthropic is None:
            import anthropic
            self._anthropic = anthropic.Anthropic(
                api_key=self.settings.anthropic_api_key, timeout=self.timeout, max_retries=0
            )
        return self._anthropic


def _provider_available(provider: Provider, settings: Settings) -> bool:
    """Check if provider has an API key configured."""
    key_map = {
        Provider.GEMINI: settings.gemini_api_key,
        Provider.OPENAI: settings.openai_api_key,
        Provider.ANTHROPIC: settings.anthropic_api_key,
    }
    return bool(key_map.get(provider, ""))


# ---------------------------------------------------------------------------
# Core call helpers (one per provider)
# ---------------------------------------------------------------------------

def _call_gemini(client, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
    from google.genai import types

    resp = client.models.generate_content(
        model=model_id,
        contents=prompt,
        config=types.GenerateContentConfig(
            temperature=temperature,
            top_k=40,
            top_p=0.95,
            max_output_tokens=max_tokens,
        ),
    )
    text = resp.text or ""
    if not text:
        raise ValueError("Gemini returned empty text")
    return text


def _call_openai(client, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
    resp = client.chat.completions.create(
        model=model_id,
        messages=[{"role": "user", "content": prompt}],
        temperature=temperature,
        max_tokens=max_tokens,
    )
    if not resp.choices:
        raise ValueError(f"OpenAI returned no choices (model={model_id})")
    return resp.choices[0].message.content or ""


def _call_anthropic(client, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
    resp = client.messages.create(
        model=model_id,
        max_tokens=max_tokens,
        temperature=temperature,
        messages=[{"role": "user", "content": prompt}],
    )
    if not resp.content:
        raise ValueError(f"Anthropic returned empty content (stop_reason={resp.stop_reason})")
    return resp.content[0].text if hasattr(resp.content[0], "text") else str(resp.content[0])


class LLMRouter:
    """
    Unified text-generation interface.  Usage:

        router = LLMRouter()
        text = router.generate("Write a short opener ...")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        chain: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.settings = settings or default_settings
        self.chain = chain or DEFAULT_CHAIN
        self.clients = _Clients(self.settings, timeout or self.settings.opener_timeout_seconds)

    def available(self) -> bool:
        """True if any model in the chain has credentials"""
        return any(_provider_available(MODELS[key].provider, self.settings) for key in self.chain)

    def generate(self, prompt: str, *, temperature: float = 0.9, max_tokens: int = 200) -> str:
        """
        Generate text, falling back along the provider chain.

        Raises:
            RuntimeError: If no provider is configured or all providers fail.
        """
        errors: list[str] = []
        for model_key in self.chain:
            spec = MODELS[model_key]
            if not _provider_available(spec.provider, self.settings):
                continue

            try:
                t0 = time.time()
                text = self._dispatch(spec, prompt, temperature, max_tokens)
                logger.debug(f"[LLMRouter] {model_key} ok | {time.time() - t0:.2f}s")
                return text
            except Exception as e:
                errors.append(f"{model_key}: {e}")
                logger.warning(f"[LLMRouter] {model_key} failed: {e}")
                continue

        if not errors:
            raise RuntimeError("No opener-generation provider configured")
        raise RuntimeError(f"All providers failed: {errors}")

    def _dispatch(self, spec: ModelSpec, prompt: str, temperature: float, max_tokens: int) -> str:
        """Route to the correct provider call."""
        if spec.provider == Provider.GEMINI:
            return _call_gemini(self.clients.gemini(), spec.model_id, prompt, temperature, max_tokens)
        elif spec.provider == Provider.OPENAI:
            return _call_openai(self.clients.openai(), spec.model_id, prompt, temperature, max_tokens)
        elif spec.provider == Provider.ANTHROPIC:
            return _call_anthropic(self.clients.anthropic(), spec.model_id, prompt, temperature, max_tokens)
        else:
            raise ValueError(f"Unknown provider: {spec.provider}")
