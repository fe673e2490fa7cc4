"""
Thin client over OpenAI-compatible chat completion providers.

DeepSeek and Gemini both expose the OpenAI wire format, so a single
``openai.OpenAI`` client pointed at the provider's ``base_url`` covers
both.  Every call asks for a JSON object and returns ``{}`` when the
provider is disabled, unreachable or answers with something unparsable.
"""
import json
import logging
import re
from typing import Optional

from django.conf import settings
from openai import OpenAI

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r'\{[\s\S]*\}')


def extract_json(text: Optional[str]) -> dict:
    """Parse the outermost ``{...}`` block of a model reply."""
    if not text:
        return {}
    match = _JSON_BLOCK.search(text)
    if not match:
        return {}
    try:
        data = json.loads(match.group(0))
    except ValueError:
        logger.warning('AI reply is not valid JSON')
        return {}
    return data if isinstance(data, dict) else {}


def provider_config(provider: Optional[str] = None) -> Optional[dict]:
    if not settings.AI_GUIDANCE_ENABLED:
        return None
    cfg = settings.AI_PROVIDERS.get(provider or settings.AI_PROVIDER)
    if not cfg or not cfg.get('api_key'):
        return None
    return cfg


def is_enabled(provider: Optional[str] = None) -> bool:
    return provider_config(provider) is not None


def chat_json(system_prompt: str, user_prompt: str, *, reasoning: bool = False, temperature: float = 0.3,
              max_tokens: int = 1500, provider: Optional[str] = None) -> dict:
    cfg = provider_config(provider)
    if cfg is None:
        return {}
    client = OpenAI(api_key=cfg['api_key'], base_url=cfg['base_url'], timeout=settings.AI_TIMEOUT)
    try:
        completion = client.chat.completions.create(
            model=cfg['reasoning_model'] if reasoning else cfg['model'],
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
    except Exception:
        logger.warning('AI provider call failed', exc_info=True)
        return {}
    choices = getattr(completion, 'choices', None) or []
    content = choices[0].message.content if choices else None
    return extract_json(content)
