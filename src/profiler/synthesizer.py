"""Turns scraped page text into a StructuredProfile with an LLM.

The orchestrator only depends on the ``Synthesizer`` interface; the LangChain
implementation below builds a chat model per call from the tenant's own API
key.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from langchain_deepseek import ChatDeepSeek
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError

from . import config
from .errors import SynthesisFailed
from .models import StructuredProfile, preserve_existing

logger = logging.getLogger(__name__)

PROFILE_SCHEMA = """{
  "businessName": "Exact official business name",
  "businessDescription": "4-6 sentences: what they do, who they serve, how, and why they are different",
  "mainProducts": ["Every specific product, listed individually"],
  "mainServices": ["Every specific service, tier or package, listed individually"],
  "keyFeatures": ["Features, certifications, awards, partnerships, guarantees"],
  "targetAudience": "Who they serve: segments, industries, markets",
  "uniqueSellingPoints": ["Every claim of uniqueness or competitive advantage"],
  "contactInfo": {"email": "email or null", "phone": "phone or null", "address": "full address or null"},
  "businessHours": "Operating hours, or \\"unknown\\"",
  "pricingInfo": "All prices, tiers, discounts and trials, or \\"unknown\\"",
  "additionalInfo": "Everything else relevant: history, policies, locations, support channels"
}"""

SUMMARIZE_PROMPT = """You are a meticulous business analyst building a database record from website content.
Extract EVERY product, service, feature, contact detail and pricing fact. Do not summarize or group items.
If a fact genuinely does not exist, use "unknown" for text fields and [] for lists. Never omit a field.

Website Content:
{content}

Respond ONLY with a JSON object matching this structure, no markdown and no commentary:
{schema}
"""

MERGE_PROMPT = """You are a business analyst merging existing business data with new website content.
Rules:
1. Keep ALL existing information that is still valid.
2. Add ANY new information from the new content.
3. For lists, combine old and new items and remove duplicates. Never drop an existing item.
4. For contact info and scalar fields, keep existing values unless the new content clearly updates them.

EXISTING BUSINESS DATA:
{existing}

NEW WEBSITE CONTENT:
{content}

Respond ONLY with a JSON object matching this structure, no markdown and no commentary:
{schema}
"""


def extract_json_from_markdown(text: str) -> Dict[str, Any]:
    """Extract a JSON object from markdown code blocks or plain text.

    Raises ``SynthesisFailed`` when no JSON object can be recovered.
    """
    json_match = re.search(r"```(?:json)?\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if json_match:
        json_str = json_match.group(1).strip()
    else:
        json_str = text.strip().lstrip('`').rstrip('`').strip()

    try:
        result = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse JSON from LLM response: {e}. Raw text snippet: {text[:200]}...")
        # Attempt cleanup: find first '{' and last '}'
        start_brace = json_str.find('{')
        end_brace = json_str.rfind('}')
        if start_brace == -1 or end_brace <= start_brace:
            raise SynthesisFailed()
        try:
            result = json.loads(json_str[start_brace:end_brace + 1])
        except json.JSONDecodeError as final_e:
            logger.error(f"Final JSON parsing failed after cleanup: {final_e}")
            raise SynthesisFailed()
        logger.info("Successfully parsed JSON after basic cleanup.")

    if not isinstance(result, dict):
        logger.warning(f"Parsed JSON is not a dict, type: {type(result)}")
        raise SynthesisFailed()
    return result


def build_chat_model(api_key: str, mode: str = config.LLM_MODE):
    """Chat model for ``mode`` authenticated with the tenant's key."""
    if not api_key:
        raise SynthesisFailed("LLM API key not configured. Please set it in Settings first.")
    if mode == "google":
        return ChatGoogleGenerativeAI(
            model=config.GOOGLE_MODEL,
            google_api_key=api_key,
            temperature=config.LLM_TEMPERATURE,
        )
    if mode == "deepseek":
        return ChatDeepSeek(
            model=config.DEEPSEEK_MODEL,
            api_key=api_key,
            api_base=config.DEEPSEEK_API_BASE,
            temperature=config.LLM_TEMPERATURE,
        )
    raise ValueError(f"Invalid LLM_MODE specified: '{mode}'. Please use 'google' or 'deepseek'.")


class Synthesizer(ABC):
    @abstractmethod
    async def summarize(self, text: str, api_key: str) -> StructuredProfile:
        ...

    @abstractmethod
    async def merge_into(self, existing: StructuredProfile, text: str, api_key: str) -> StructuredProfile:
        """Superset of ``existing`` enriched with facts found in ``text``."""


class LLMSynthesizer(Synthesizer):
    def __init__(self, mode: str = config.LLM_MODE,
                 llm_factory: Optional[Callable[[str], Any]] = None):
        self.mode = mode
        self.llm_factory = llm_factory or (lambda api_key: build_chat_model(api_key, self.mode))
        logger.info(f"Configured LLM Mode: {self.mode}")

    async def summarize(self, text: str, api_key: str) -> StructuredProfile:
        prompt = SUMMARIZE_PROMPT.format(content=text, schema=PROFILE_SCHEMA)
        return await self._invoke(prompt, api_key)

    async def merge_into(self, existing: StructuredProfile, text: str, api_key: str) -> StructuredProfile:
        if not text or not text.strip():
            logger.info("No new content to merge; keeping existing profile.")
            return existing.model_copy(deep=True)
        prompt = MERGE_PROMPT.format(
            existing=json.dumps(existing.model_dump(by_alias=True), indent=2, ensure_ascii=False),
            content=text,
            schema=PROFILE_SCHEMA,
        )
        merged = await self._invoke(prompt, api_key)
        return preserve_existing(existing, merged)

    async def _invoke(self, prompt: str, api_key: str) -> StructuredProfile:
        llm = self.llm_factory(api_key)
        try:
            logger.debug(f"Invoking LLM ({self.mode}) with {len(prompt)} prompt chars")
            response = await llm.ainvoke(prompt)
        except SynthesisFailed:
            raise
        except Exception as e:
            # Provider errors may echo request details; keep them in the log only.
            logger.error(f"LLM call failed: {type(e).__name__}: {e}")
            raise SynthesisFailed() from e

        content = getattr(response, "content", None)
        if not content or not isinstance(content, str):
            logger.warning("LLM returned no text content")
            raise SynthesisFailed()

        data = extract_json_from_markdown(content)
        try:
            return StructuredProfile.model_validate(data)
        except ValidationError as e:
            logger.warning(f"LLM output did not match the profile schema: {e}")
            raise SynthesisFailed() from e
