import asyncio
import json
import logging
import os
import random
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import yaml
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from campus_curator.utils.error_monitoring import ErrorCategory, classify_error
from campus_curator.utils.logging_config import log_ai_interaction


DEFAULT_PROMPTS_PATH = Path(__file__).resolve().parent.parent / "config" / "prompts.yaml"

_FALLBACK_PROMPTS: Dict[str, Any] = {
    "master_persona": "You are a tech news editor for a university club platform.",
    "article_selection": {
        "system": "Respond with ONLY a comma-separated list of article IDs.",
        "template": "Select the {target_count} best articles, best first.\n\n{articles_block}",
    },
}


class AIServiceError(Exception):
    pass


def parse_selected_ids(text: str, max_id: int) -> List[int]:
    """
    Extract ranking ids from free-form model output.

    Keeps the order of first appearance and drops duplicates and anything
    outside ``[1, max_id]``.
    """
    if not text:
        return []
    ids: List[int] = []
    seen = set()
    for token in re.findall(r"\d+", text):
        value = int(token)
        if 1 <= value <= max_id and value not in seen:
            seen.add(value)
            ids.append(value)
    return ids


def format_articles_block(summaries: List[Dict[str, Any]]) -> str:
    lines = []
    for s in summaries:
        block = [f"ID: {s['id']}", f"Title: {s.get('title', '')}"]
        for label, key in (("Description", "description"), ("Source", "source"),
                           ("Category", "category"), ("Published", "published"),
                           ("Engagement", "engagement")):
            if s.get(key) not in (None, ""):
                block.append(f"{label}: {s[key]}")
        lines.append("\n".join(block) + "\n---")
    return "\n".join(lines)


def is_retryable_error(error: Exception) -> bool:
    """Only overload, server-side and timeout failures are worth retrying."""
    if isinstance(error, genai_errors.ServerError):
        return True
    if isinstance(error, genai_errors.APIError):
        # 4xx other than rate limiting is a caller problem (auth, bad request)
        return getattr(error, "code", None) == 429
    if isinstance(error, (asyncio.TimeoutError, ConnectionError)):
        return True
    return classify_error(error) == ErrorCategory.TRANSIENT


class AIService:
    """
    Ranking client for Gemini using the Google GenAI SDK.

    The model only ever ranks: it receives numbered candidate summaries and
    answers with comma-separated ids.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        prompts_path: Optional[str] = None,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        timeout_seconds: float = 60.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None
    ):
        self.api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not self.api_key:
            raise ValueError("Gemini API key required. Set GEMINI_API_KEY or pass api_key parameter.")

        self.client = genai.Client(api_key=self.api_key)
        self.logger = logging.getLogger(__name__)

        self.prompts_path = Path(prompts_path) if prompts_path else DEFAULT_PROMPTS_PATH
        self.prompts = self._load_prompts()

        params = self.prompts.get("parameters", {}) if isinstance(self.prompts, dict) else {}
        model_cfg = params.get("gemini", {}) if isinstance(params, dict) else {}
        self.model = os.getenv("GEMINI_MODEL") or model_cfg.get("model", "gemini-2.5-flash")
        temps_cfg = params.get("temperatures", {}) if isinstance(params, dict) else {}
        self.temperature = float(temps_cfg.get("ranking", 0.2))

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.timeout_seconds = timeout_seconds
        self.max_tokens = 1024
        self._sleep = sleep or asyncio.sleep

    def _load_prompts(self) -> Dict[str, Any]:
        """Load prompts from YAML, falling back to built-in minimal prompts."""
        try:
            with open(self.prompts_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or dict(_FALLBACK_PROMPTS)
        except FileNotFoundError:
            self.logger.warning(f"Prompts file not found at {self.prompts_path}, using built-in prompts")
            return dict(_FALLBACK_PROMPTS)
        except yaml.YAMLError as e:
            raise AIServiceError(f"Error parsing YAML at {self.prompts_path}: {e}") from e

    async def test_connection(self) -> bool:
        """Ping the API to validate connectivity and key."""
        try:
            self.logger.info("🔍 Testing AI service connection...")
            text = await self._call_gemini([{"role": "user", "content": "ping"}], max_tokens=16)
            self.logger.info(f"✅ AI service test response: {text or 'No content'}")
            return True
        except Exception as e:
            self.logger.error(f"❌ AI service test connection failed: {e}")
            self.logger.error(f"   Model: {self.model}")
            return False

    async def select_ids(
        self,
        summaries: List[Dict[str, Any]],
        target_count: int,
        prompt_key: str = "article_selection",
        **context: Any
    ) -> List[int]:
        """
        Ask the model to pick ``target_count`` of ``summaries``.

        Summaries must carry ids ``1..len(summaries)``. Returns the valid ids
        in the model's order, at most ``target_count`` of them.

        Raises:
            AIServiceError: non-retryable failure or retries exhausted
        """
        if not summaries or target_count <= 0:
            return []

        messages = self._format_prompt(prompt_key, {
            "target_count": target_count,
            "articles_block": format_articles_block(summaries),
            **context,
        })
        text = await self._generate_with_retries(messages, prompt_key)
        ids = parse_selected_ids(text, len(summaries))
        if len(ids) < target_count:
            self.logger.warning(
                f"AI returned {len(ids)} usable ids for '{prompt_key}' (asked for {target_count})"
            )
        return ids[:target_count]

    async def _generate_with_retries(self, messages: List[Dict[str, str]], prompt_key: str) -> str:
        last_error: Optional[Exception] = None
        loop = asyncio.get_running_loop()

        for attempt in range(self.max_attempts):
            start = loop.time()
            try:
                text = await self._call_gemini(messages, max_tokens=self.max_tokens)
                log_ai_interaction(
                    self.logger, prompt_key, self.model,
                    (loop.time() - start) * 1000, True, attempt=attempt + 1
                )
                return text
            except Exception as e:
                log_ai_interaction(
                    self.logger, prompt_key, self.model,
                    (loop.time() - start) * 1000, False, attempt=attempt + 1, error=str(e)
                )
                if not is_retryable_error(e):
                    raise AIServiceError(f"Non-retryable AI failure for '{prompt_key}': {e}") from e
                last_error = e
                if attempt < self.max_attempts - 1:
                    delay = self.base_delay * (2 ** attempt) + random.uniform(0, 0.5)
                    self.logger.warning(
                        f"Transient AI failure (attempt {attempt + 1}/{self.max_attempts}): {e}. "
                        f"Retrying after {delay:.1f}s..."
                    )
                    await self._sleep(delay)

        raise AIServiceError(
            f"AI call '{prompt_key}' failed after {self.max_attempts} attempts: {last_error}"
        ) from last_error

    async def _call_gemini(self, messages: List[Dict[str, str]], max_tokens: int = 1024) -> str:
        """Single Gemini call; returns the response text."""
        system_instruction = None
        contents: List[str] = []
        for msg in messages:
            if msg.get("role") == "system":
                system_instruction = msg["content"]
            else:
                contents.append(msg["content"])

        config_params: Dict[str, Any] = {
            "max_output_tokens": max_tokens,
            "temperature": self.temperature,
        }
        if system_instruction:
            config_params["system_instruction"] = system_instruction

        response = await asyncio.wait_for(
            self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(**config_params)
            ),
            timeout=self.timeout_seconds
        )

        try:
            return response.text or ""
        except ValueError:
            # .text raises when the candidate holds no text parts
            return ""

    def _format_prompt(self, prompt_key: str, context: Dict[str, Any]) -> List[Dict[str, str]]:
        """Construct system and user messages from prompt templates."""
        master_persona = self.prompts.get("master_persona", "")
        cfg = self.prompts.get(prompt_key) or self.prompts.get("article_selection")
        if not cfg:
            return [
                {"role": "system", "content": master_persona or "You rank articles."},
                {"role": "user", "content": json.dumps(context, ensure_ascii=False, default=str)},
            ]

        system_text = (master_persona + "\n" + cfg.get("system", "")).strip()
        template = cfg.get("template", "")
        try:
            user_text = template.format(**context)
        except (KeyError, IndexError, ValueError):
            user_text = template + "\n\nContext JSON:\n" + json.dumps(context, ensure_ascii=False, default=str)

        return [
            {"role": "system", "content": system_text},
            {"role": "user", "content": user_text},
        ]
