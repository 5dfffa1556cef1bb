"""
Conversational budgeting advice collaborator.

Sends the user's conversation plus a precomputed spending summary to an
OpenAI-compatible chat-completions endpoint and returns the reply text.
Supports OpenRouter, Groq, OpenAI and Cursor endpoints. A credential is
mandatory; there is no offline fallback.
"""

import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

import httpx

from analytics import SpendingSummary
from config_manager import get_section
from exceptions import AdviceError, ConfigError

logger = logging.getLogger(__name__)

PROVIDERS = ("openrouter", "groq", "openai", "cursor")

DEFAULT_MODELS = {
    "openrouter": "meta-llama/llama-3.1-70b-instruct:free",
    "groq": "llama3-70b-8192",
    "openai": "gpt-4o-mini",
    "cursor": "gpt-4o-mini",
}

API_KEY_ENV_VARS = {
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
    "cursor": "CURSOR_API_KEY",
}

ENDPOINTS = {
    "openrouter": "https://openrouter.ai/api/v1/chat/completions",
    "groq": "https://api.groq.com/openai/v1/chat/completions",
    "openai": "https://api.openai.com/v1/chat/completions",
}

DEFAULT_CURSOR_BASE_URL = "https://api.cursor.sh/v1"


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class AdviceSettings:
    """Resolved provider, model and credential for one request."""
    provider: str
    model: str
    api_key: Optional[str] = field(default=None, repr=False)
    base_url: Optional[str] = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None, api_key: Optional[str] = None) -> "AdviceSettings":
        """
        Resolve settings from the ``advice`` section and the environment.

        The credential is taken from ``api_key``, then the provider's
        environment variable, then the config file.

        Raises:
            ConfigError: If the provider is unknown
        """
        section = get_section(config or {}, "advice")
        provider = str(os.environ.get("AI_PROVIDER") or section.get("provider") or "openrouter").lower()
        if provider not in PROVIDERS:
            raise ConfigError(f"Unknown advice provider: {provider}", details={"allowed": ", ".join(PROVIDERS)})

        model = os.environ.get("AI_MODEL") or section.get("model") or DEFAULT_MODELS[provider]
        key = api_key or os.environ.get(API_KEY_ENV_VARS[provider]) or section.get("api_key")
        base_url = os.environ.get("CURSOR_BASE_URL") or section.get("base_url")
        return cls(
            provider=provider,
            model=model,
            api_key=key or None,
            base_url=base_url,
            timeout_seconds=float(section.get("timeout_seconds", 30)),
        )

    @property
    def endpoint(self) -> str:
        if self.provider == "cursor":
            base = self.base_url or DEFAULT_CURSOR_BASE_URL
            return f"{base.rstrip('/')}/chat/completions"
        return ENDPOINTS[self.provider]


@dataclass(frozen=True)
class AdviceContext:
    summary: SpendingSummary
    monthly_budget: Optional[Decimal] = None


def _money(value: Any) -> str:
    return f"${Decimal(value):.2f}"


def build_system_prompt(context: AdviceContext) -> ChatMessage:
    """Render the spending context into the assistant's system prompt."""
    summary = context.summary
    top = ", ".join(f"{row.category} {_money(row.amount)}" for row in summary.top_categories) or "n/a"
    limits = "; ".join(
        f"{row.category} {row.percentage:.0f}% ({_money(row.spent)}/{_money(row.limit)})"
        for row in summary.limits_progress
    ) or "n/a"
    budget = context.monthly_budget if context.monthly_budget is not None else "unknown"

    content = (
        "You are a friendly personal finance assistant. Give practical, short, and specific "
        "budgeting advice. Use the provided user context to ground suggestions. Avoid generic "
        "disclaimers.\n\n"
        "User context:\n"
        f"- Monthly budget: {budget}\n"
        f"- This month total: {_money(summary.total_this_month)}\n"
        f"- Avg daily spend: {_money(summary.avg_daily)}\n"
        f"- Top categories: {top}\n"
        f"- Limits: {limits}"
    )
    return ChatMessage(role="system", content=content)


def _extract_content(data: Any) -> str:
    """
    Pull the reply text out of a chat-completions body.

    Raises:
        AdviceError: If the first choice is not an object
    """
    try:
        choice = data["choices"][0]
    except (KeyError, IndexError, TypeError):
        return ""
    message = choice.get("message") or {} if isinstance(choice, dict) else None
    if not isinstance(message, dict):
        raise AdviceError(
            "AI response had an unexpected shape",
            details={"choice_type": type(choice).__name__}
        )
    content = message.get("content") or choice.get("text") or ""
    return content if isinstance(content, str) else str(content)


async def generate_advice(
    messages: Sequence[ChatMessage],
    context: AdviceContext,
    settings: AdviceSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> str:
    """
    Ask the configured model for budgeting advice.

    Args:
        messages: Conversation so far (user/assistant turns)
        context: Spending summary to ground the answer
        settings: Provider, model, credential and timeout
        transport: Optional httpx transport (used by tests)

    Returns:
        The assistant's reply text (may be empty)

    Raises:
        ConfigError: If no credential is configured
        AdviceError: On timeouts, network failures or non-2xx responses
    """
    if not settings.api_key:
        raise ConfigError(
            "Missing AI API key. Set it in the advice.api_key config value or the "
            f"{API_KEY_ENV_VARS[settings.provider]} environment variable.",
            details={"provider": settings.provider}
        )

    payload: Dict[str, Any] = {
        "model": settings.model,
        "messages": [build_system_prompt(context).to_dict()] + [m.to_dict() for m in messages],
        "temperature": 0.3,
        "max_tokens": 600,
    }
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.api_key}",
    }

    logger.debug(f"Requesting advice from {settings.provider} ({settings.model})")
    try:
        async with httpx.AsyncClient(timeout=settings.timeout_seconds, transport=transport) as client:
            response = await client.post(settings.endpoint, json=payload, headers=headers)
    except httpx.TimeoutException as e:
        raise AdviceError(
            "AI request timed out",
            details={"provider": settings.provider, "timeout_seconds": settings.timeout_seconds},
            original_error=e
        ) from e
    except httpx.HTTPError as e:
        raise AdviceError(
            f"AI request failed: {e}",
            details={"provider": settings.provider},
            original_error=e
        ) from e

    if response.is_error:
        raise AdviceError(
            f"AI request failed: {response.status_code} {response.text}",
            details={"provider": settings.provider, "status": response.status_code}
        )

    try:
        data = response.json()
    except ValueError as e:
        raise AdviceError("AI response was not valid JSON", original_error=e) from e
    return _extract_content(data)


def conversation_from_texts(texts: Sequence[str]) -> List[ChatMessage]:
    """Treat alternating texts as user/assistant turns, starting with the user."""
    roles = ("user", "assistant")
    return [ChatMessage(role=roles[i % 2], content=text) for i, text in enumerate(texts)]
