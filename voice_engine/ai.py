"""
Gemini AI client with automatic key rotation and retry logic.
No database dependency; manages keys in-memory with round-robin rotation.

Two call shapes are used by the pipeline:
- generate_text(): plain prompt → text (content generation)
- call_tool():     prompt + one declared function → AgentResponse with the
                   structured tool call(s) and any free text (preview, extraction)

Rate limit handling:
- On 429, the key goes into a short cooldown and the next key is tried
- A key is only marked "exhausted" after repeated 429s or a daily-quota error
"""

import time
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

# Error message markers for classification
_QUOTA_MARKERS = ["429", "quota", "rate limit", "resource exhausted", "too many requests"]
_NETWORK_MARKERS = ["broken pipe", "errno 32", "connection", "reset", "timeout"]
_DAILY_QUOTA_MARKERS = ["per_day", "perday", "daily", "quotaexceeded", "limit: 0"]

RATE_LIMIT_WAIT_SECONDS = 15  # Cooldown after a 429 before reusing the same key
MAX_429_BEFORE_EXHAUST = 3     # Consecutive 429s before a key is considered exhausted


class AIError(Exception):
    """Raised when Gemini gives no usable answer after all retries."""


@dataclass
class ToolCall:
    name: str
    args: Any   # Mapping from the SDK; some models send a JSON string instead


@dataclass
class AgentResponse:
    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)


class GeminiClient:
    """Gemini API client with automatic key rotation on quota exhaustion.

    Supports multiple API keys with round-robin selection.
    On quota errors (429), rotates keys and waits out cooldowns.
    On network errors, retries with exponential backoff.
    """

    def __init__(self, api_keys: list[str], model_name: str = "gemini-2.5-flash"):
        if not api_keys:
            raise ValueError("At least one API key is required")
        self._keys = api_keys
        self.model_name = model_name
        self._key_index = 0
        self._exhausted: set[int] = set()
        self._key_cooldowns: dict[int, datetime] = {}
        self._key_429_counts: dict[int, int] = {}
        self._clients: dict[int, genai.Client] = {}

    def with_model(self, model_name: str) -> "GeminiClient":
        """Same keys, different model."""
        if model_name == self.model_name:
            return self
        return GeminiClient(self._keys, model_name)

    def _get_available_key(self) -> tuple[int, str]:
        """Get the next available API key via round-robin.

        Waits if every key is cooling down but none is exhausted.
        """
        now = datetime.utcnow()

        expired = [idx for idx, until in self._key_cooldowns.items() if until <= now]
        for idx in expired:
            del self._key_cooldowns[idx]
            self._key_429_counts.pop(idx, None)

        available = [
            (i, k) for i, k in enumerate(self._keys)
            if i not in self._exhausted and i not in self._key_cooldowns
        ]
        if available:
            idx = self._key_index % len(available)
            self._key_index += 1
            return available[idx]

        in_cooldown = [
            i for i in range(len(self._keys))
            if i not in self._exhausted and i in self._key_cooldowns
        ]
        if in_cooldown:
            soonest_idx = min(in_cooldown, key=lambda i: self._key_cooldowns[i])
            wait_time = (self._key_cooldowns[soonest_idx] - now).total_seconds()
            if wait_time > 0:
                logger.info(f"⏳ All keys rate-limited. Waiting {wait_time:.0f}s for key {soonest_idx + 1}...")
                time.sleep(wait_time + 1)
            del self._key_cooldowns[soonest_idx]
            self._key_429_counts.pop(soonest_idx, None)
            return soonest_idx, self._keys[soonest_idx]

        raise AIError("All API keys exhausted. Wait for quota reset or add more keys.")

    def _handle_rate_limit(self, key_idx: int, error: Exception):
        if self._is_daily_quota_error(error):
            logger.warning(f"🚫 Key {key_idx + 1} hit DAILY quota limit — marking exhausted. Error: {str(error)[:120]}")
            self._exhausted.add(key_idx)
            self._key_cooldowns.pop(key_idx, None)
            self._key_429_counts.pop(key_idx, None)
            return

        self._key_429_counts[key_idx] = self._key_429_counts.get(key_idx, 0) + 1
        consecutive_429s = self._key_429_counts[key_idx]

        if consecutive_429s >= MAX_429_BEFORE_EXHAUST:
            logger.warning(f"🚫 Key {key_idx + 1} hit {consecutive_429s} consecutive 429s - marking as exhausted")
            self._exhausted.add(key_idx)
            self._key_cooldowns.pop(key_idx, None)
        else:
            cooldown_until = datetime.utcnow() + timedelta(seconds=RATE_LIMIT_WAIT_SECONDS)
            self._key_cooldowns[key_idx] = cooldown_until
            logger.warning(
                f"⏸️ Key {key_idx + 1} rate-limited ({consecutive_429s}/{MAX_429_BEFORE_EXHAUST}), "
                f"cooldown until {cooldown_until.strftime('%H:%M:%S')}"
            )

    def _get_client(self, key_idx: int, key: str) -> genai.Client:
        if key_idx not in self._clients:
            self._clients[key_idx] = genai.Client(api_key=key)
        return self._clients[key_idx]

    @staticmethod
    def _is_quota_error(e: Exception) -> bool:
        s = str(e).lower()
        return any(m in s for m in _QUOTA_MARKERS)

    @staticmethod
    def _is_daily_quota_error(e: Exception) -> bool:
        s = str(e).lower().replace(" ", "").replace("_", "")
        return any(m in s for m in _DAILY_QUOTA_MARKERS)

    @staticmethod
    def _is_network_error(e: Exception) -> bool:
        s = str(e).lower()
        return any(m in s for m in _NETWORK_MARKERS)

    def _with_retries(self, label: str, call: Callable[[genai.Client], Any], max_retries: int):
        last_error = None

        for attempt in range(max_retries):
            key_idx, key = self._get_available_key()
            client = self._get_client(key_idx, key)

            try:
                logger.info(
                    f"{label} (attempt {attempt + 1}/{max_retries}, "
                    f"key {key_idx + 1}/{len(self._keys)}, model {self.model_name})"
                )
                result = call(client)
                self._key_429_counts.pop(key_idx, None)
                return result

            except Exception as e:
                last_error = e
                if self._is_quota_error(e):
                    self._handle_rate_limit(key_idx, e)
                    continue
                if self._is_network_error(e):
                    wait = min(5 * (2 ** attempt), 30)
                    logger.warning(f"Network error, retrying in {wait}s: {e}")
                    time.sleep(wait)
                    continue
                raise

        raise AIError(f"{label} failed after {max_retries} attempts: {last_error}")

    def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        max_retries: int = 3,
    ) -> str:
        """Plain text generation."""

        def _call(client: genai.Client) -> str:
            response = client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    temperature=1.0,
                    top_p=0.95,
                    max_output_tokens=65536,
                ),
            )
            self._validate_response(response)
            return response.text

        text = self._with_retries("Generating text", _call, max_retries)
        logger.info(f"Generation complete: {len(text)} chars")
        return text

    def call_tool(
        self,
        prompt: str,
        tool_name: str,
        tool_description: str,
        parameters_schema: dict,
        system_instruction: Optional[str] = None,
        max_retries: int = 3,
    ) -> AgentResponse:
        """Ask the model to answer through a single declared function.

        The model is forced into function-calling mode (ANY) restricted to
        ``tool_name``. Whatever it returns is handed back unvalidated:
        argument decoding and validation belong to the caller.
        """
        tool = types.Tool(function_declarations=[
            types.FunctionDeclaration(
                name=tool_name,
                description=tool_description,
                parameters_json_schema=parameters_schema,
            )
        ])
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=0.2,
            tools=[tool],
            tool_config=types.ToolConfig(
                function_calling_config=types.FunctionCallingConfig(
                    mode="ANY",
                    allowed_function_names=[tool_name],
                )
            ),
        )

        def _call(client: genai.Client) -> AgentResponse:
            response = client.models.generate_content(
                model=self.model_name,
                contents=prompt,
                config=config,
            )
            if not response or not getattr(response, "candidates", None):
                raise AIError("No candidates in Gemini response")
            return self._to_agent_response(response)

        result = self._with_retries(f"Calling tool {tool_name}", _call, max_retries)
        logger.info(
            f"Tool call complete: {len(result.tool_calls)} call(s), {len(result.text)} chars of text"
        )
        return result

    @staticmethod
    def _to_agent_response(response) -> AgentResponse:
        calls = [
            ToolCall(name=fc.name or "", args=fc.args if fc.args is not None else {})
            for fc in (response.function_calls or [])
        ]
        text_parts = []
        for candidate in response.candidates[:1]:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    text_parts.append(part.text)
        return AgentResponse(text="".join(text_parts).strip(), tool_calls=calls)

    @staticmethod
    def _validate_response(response):
        """Validate a Gemini API response before accessing .text."""
        if not response:
            raise AIError("Empty response from Gemini API")

        if not hasattr(response, "candidates") or not response.candidates:
            raise AIError("No candidates in Gemini response")

        candidate = response.candidates[0]
        finish = getattr(candidate, "finish_reason", None)
        if finish and str(finish) not in ("STOP", "FinishReason.STOP", "UNSPECIFIED", "FinishReason.UNSPECIFIED", "0", "1"):
            if "MAX_TOKENS" in str(finish):
                logger.warning("Response hit max token limit — returning partial content")
                if response.text:
                    return
                raise AIError("Hit max tokens with no content")
            raise AIError(f"Abnormal finish reason: {finish}")

        if not response.text or not response.text.strip():
            raise AIError("Empty text in Gemini response")
