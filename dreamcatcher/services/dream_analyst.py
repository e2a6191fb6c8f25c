"""
OpenRouter client for dream analysis and the Dream Analyst chat.

Routes receive the client through the get_dream_analyst dependency so tests can
swap it out with app.dependency_overrides.
"""
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from dreamcatcher.core.config import settings
from dreamcatcher.core.exceptions import AnalystError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1/chat/completions"

# Fast, reliable free models first
FALLBACK_MODELS = [
    "deepseek/deepseek-chat-v3.1:free",
    "meta-llama/llama-3.2-3b-instruct:free",
    "microsoft/phi-3-mini-128k-instruct:free",
    "google/gemma-2-2b-it:free",
]
MAX_ATTEMPTS = 3
PER_ATTEMPT_TIMEOUT_SECONDS = 10.0
RETRYABLE_STATUSES = (429, 502, 503)

PREMIUM_ANALYSIS_PROMPT = """You are an expert dream analyst specialized ONLY in dream interpretation and psychological analysis. You provide comprehensive dream analysis including:

1. **Symbolic Interpretation**: Key symbols and their meanings
2. **Psychological Analysis**: Emotional patterns and subconscious themes
3. **Personal Context**: How this relates to the dreamer's life
4. **Recurring Patterns**: Connections to common dream themes
5. **Actionable Insights**: Practical takeaways for personal growth
6. **Multiple Perspectives**: Different possible interpretations

IMPORTANT: You ONLY analyze dreams and provide psychological insights. You do NOT provide medical advice, mental health treatment recommendations, or guidance on topics unrelated to dreams and sleep. If the dream content suggests serious mental health concerns, encourage the dreamer to consult with appropriate professionals."""

FREE_ANALYSIS_PROMPT = """You are a dream analyst specialized ONLY in dream interpretation. Provide a brief, helpful interpretation focusing on the most obvious symbols and themes. Keep it concise and practical.

IMPORTANT: You ONLY analyze dreams and provide basic psychological insights. You do NOT provide medical advice, mental health treatment recommendations, or guidance on topics unrelated to dreams and sleep."""

CHAT_PROMPT = """You are a specialized dream analyst and mood tracker assistant for the AI Dream Catcher app. You ONLY provide guidance and insights about dreams and dream interpretation, mood tracking and emotional patterns, sleep patterns and their connection to dreams, and personal growth insights related to dreams and emotions.

Politely decline medical, legal, financial, political or religious questions and any topic unrelated to dreams, moods or sleep: "I'm specialized in dream analysis and mood tracking. I'd be happy to help you explore your dreams, moods, or sleep patterns instead."

Be empathetic, non-judgmental, and focus on helping users understand their dreams and emotional patterns."""


@dataclass
class AnalystReply:
    text: str
    model: str


class DreamAnalyst:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        referer: str,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.referer = referer
        self.transport = transport

    def _try_order(self, model: str) -> List[str]:
        order = []
        for candidate in [model] + FALLBACK_MODELS:
            if candidate and candidate not in order:
                order.append(candidate)
        return order[:MAX_ATTEMPTS]

    def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.7,
        max_tokens: int = 300,
    ) -> AnalystReply:
        """
        POST a chat completion, walking the fallback model list when a model is
        rate limited, unavailable or unknown. Raises AnalystError once every
        attempt has failed.
        """
        if not self.api_key:
            raise ProviderNotConfiguredError("AI service is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.referer,
            "X-Title": "AI Dream Catcher",
        }
        body = {
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": 0.9,
        }

        try_order = self._try_order(self.model)
        last_error = "Unknown error"
        with httpx.Client(timeout=PER_ATTEMPT_TIMEOUT_SECONDS, transport=self.transport) as client:
            for attempt, model in enumerate(try_order):
                try:
                    response = client.post(OPENROUTER_BASE_URL, json={**body, "model": model}, headers=headers)
                    response.raise_for_status()
                    data = response.json()
                except httpx.HTTPStatusError as e:
                    status_code = e.response.status_code
                    last_error = _error_message(e.response)
                    logger.warning(
                        "OpenRouter attempt %s/%s with %s failed: %s %s",
                        attempt + 1, len(try_order), model, status_code, last_error,
                    )
                    if status_code in RETRYABLE_STATUSES:
                        time.sleep(attempt + 1)
                        continue
                    if status_code == 404 or "model" in last_error.lower():
                        continue
                    raise AnalystError(f"AI service error ({status_code}): {last_error}")
                except (httpx.RequestError, ValueError) as e:
                    last_error = str(e) or e.__class__.__name__
                    logger.warning("OpenRouter attempt %s/%s with %s failed: %s", attempt + 1, len(try_order), model, last_error)
                    continue

                choices = data.get("choices") or []
                text = ((choices[0].get("message") or {}).get("content") if choices else "") or ""
                logger.info("OpenRouter reply from %s (usage=%s)", data.get("model") or model, data.get("usage"))
                return AnalystReply(text=text, model=data.get("model") or model)

        raise AnalystError(f"AI service is currently unavailable. Please try again later. Last error: {last_error}")

    def analyze_dream(self, dream_text: str, premium: bool = False) -> AnalystReply:
        if premium:
            messages = [
                {"role": "system", "content": PREMIUM_ANALYSIS_PROMPT},
                {"role": "user", "content": f"Please provide a comprehensive analysis of this dream:\n\n{dream_text}"},
            ]
            return self.complete(messages, temperature=0.8, max_tokens=1200)
        messages = [
            {"role": "system", "content": FREE_ANALYSIS_PROMPT},
            {"role": "user", "content": f"Analyze this dream briefly:\n\n{dream_text}"},
        ]
        return self.complete(messages, temperature=0.7, max_tokens=400)

    def chat_with_analyst(self, history: List[Dict[str, str]], message: str) -> AnalystReply:
        messages = [{"role": "system", "content": CHAT_PROMPT}]
        messages.extend(history)
        messages.append({"role": "user", "content": message})
        return self.complete(messages, max_tokens=600)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.reason_phrase


_analyst: Optional[DreamAnalyst] = None


def get_dream_analyst() -> DreamAnalyst:
    global _analyst
    if _analyst is None:
        _analyst = DreamAnalyst(
            api_key=settings.OPENROUTER_API_KEY,
            model=settings.OPENROUTER_MODEL,
            referer=settings.APP_PUBLIC_URL,
        )
    return _analyst
