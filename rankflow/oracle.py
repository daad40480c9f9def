"""Vision-model extraction of leaderboard rows from screenshots.

Each oracle takes raw image bytes and returns the ranking rows visible in
the screenshot. Requests are spaced by a minimum interval and transient
provider failures are retried before surfacing as ``ExtractionFailure``.
"""

import base64
from collections.abc import Callable
import json
import logging
import re
import time
from typing import Protocol

import anthropic
import openai

from rankflow.config import Settings
from rankflow.errors import ConfigurationError, ExtractionFailure
from rankflow.retry import RetryExhaustedError, is_transient_status, run_with_retries
from rankflow.schemas import Record


logger = logging.getLogger(__name__)

MAX_TOKENS = 1000
CONNECTION_ERRORS = (openai.APIConnectionError, anthropic.APIConnectionError)
JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

EXTRACTION_PROMPT = """
Analyze this screenshot from the mobile game "Last War" and extract the ranking information.

The screenshot shows a leaderboard/ranking table with the following columns:
- Rank (numerical ranking position)
- Commander Name (player name)
- Points (numerical score)

Please extract ALL visible ranking entries from the image and return ONLY the following JSON format:

{
  "rankings": [
    {
      "rank": 1,
      "commanderName": "PlayerName",
      "points": 12345
    }
  ]
}

Important guidelines:
1. Extract ALL visible entries, even if partially visible
2. Ensure rank numbers are sequential and logical
3. Points should be numerical values (remove any formatting like commas)
4. Commander names should be exact as shown
5. If you cannot read a value clearly, use null for that field
6. Return ONLY the JSON object, with NO explanation or additional text before or after
""".strip()


class ExtractionOracle(Protocol):
    def extract(self, image: bytes, media_type: str = "image/jpeg") -> list[Record]: ...


def _is_integer(value: object) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def parse_ranking_response(text: str) -> list[Record]:
    """Turn a model reply into records, skipping rows with unreadable fields."""
    candidate = text.strip()
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        match = JSON_BLOCK.search(candidate)
        if match is None:
            raise ValueError("no JSON found in response") from None
        try:
            payload = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise ValueError(f"invalid JSON in response: {exc}") from exc

    rankings = payload.get("rankings") if isinstance(payload, dict) else None
    if not isinstance(rankings, list):
        raise ValueError("invalid response format: missing rankings array")

    records: list[Record] = []
    for index, entry in enumerate(rankings):
        if not isinstance(entry, dict):
            logger.warning("invalid ranking entry", extra={"index": index, "entry": entry})
            continue
        rank = entry.get("rank")
        name = entry.get("commanderName")
        points = entry.get("points")
        if not _is_integer(rank) or not name or not _is_integer(points):
            logger.warning("invalid ranking entry", extra={"index": index, "entry": entry})
            continue
        records.append(Record(rank=int(rank), commander_name=str(name), points=int(points)))
    return records


def estimate_cost(screenshot_count: int, provider: str, model: str, prices: dict[str, float]) -> str:
    cost_per_image = prices.get(provider, prices.get("openai", 0.0))
    return f"Estimated cost: ${screenshot_count * cost_per_image:.2f} USD ({model})"


class VisionOracle:
    provider = "unknown"

    def __init__(
        self,
        *,
        model: str,
        min_interval_seconds: float = 1.0,
        max_retries: int = 2,
        backoff_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.model = model
        self.min_interval_seconds = min_interval_seconds
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.request_count = 0
        self._last_request_at: float | None = None
        self._clock = clock
        self._sleep = sleep

    def extract(self, image: bytes, media_type: str = "image/jpeg") -> list[Record]:
        encoded = base64.b64encode(image).decode("ascii")
        try:
            text = run_with_retries(
                lambda: self._send(encoded, media_type),
                max_retries=self.max_retries,
                backoff_seconds=self.backoff_seconds,
                should_retry=self._is_transient,
                sleep=self._sleep,
            )
        except RetryExhaustedError as exc:
            cause = exc.__cause__
            raise ExtractionFailure(
                f"AI service request failed after {exc.attempts} attempt(s): {cause}",
                self.provider,
                self._status_code(cause),
            ) from cause

        try:
            return parse_ranking_response(text)
        except ValueError as exc:
            raise ExtractionFailure(f"failed to parse AI response: {exc}", self.provider) from exc

    def usage_stats(self) -> dict[str, object]:
        return {"request_count": self.request_count, "provider": self.provider}

    def _send(self, encoded_image: str, media_type: str) -> str:
        self._wait_for_slot()
        try:
            return self._request(encoded_image, media_type)
        finally:
            self.request_count += 1
            self._last_request_at = self._clock()

    def _wait_for_slot(self) -> None:
        if self._last_request_at is None:
            return
        elapsed = self._clock() - self._last_request_at
        if elapsed < self.min_interval_seconds:
            self._sleep(self.min_interval_seconds - elapsed)

    def _is_transient(self, exc: Exception) -> bool:
        # Timeouts and dropped connections never carry an HTTP status.
        if isinstance(exc, CONNECTION_ERRORS):
            return True
        return is_transient_status(self._status_code(exc))

    @staticmethod
    def _status_code(exc: BaseException | None) -> int | None:
        return getattr(exc, "status_code", None)

    def _request(self, encoded_image: str, media_type: str) -> str:
        raise NotImplementedError


class OpenAIOracle(VisionOracle):
    provider = "openai"

    def __init__(self, *, api_key: str, endpoint: str | None = None, client: openai.OpenAI | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.client = client or openai.OpenAI(api_key=api_key, base_url=endpoint, max_retries=0)

    def _request(self, encoded_image: str, media_type: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {"type": "image_url", "image_url": {"url": f"data:{media_type};base64,{encoded_image}"}},
                    ],
                }
            ],
            max_tokens=MAX_TOKENS,
            temperature=0.1,
        )
        return response.choices[0].message.content or ""


class AnthropicOracle(VisionOracle):
    provider = "anthropic"

    def __init__(
        self,
        *,
        api_key: str,
        endpoint: str | None = None,
        client: anthropic.Anthropic | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.client = client or anthropic.Anthropic(api_key=api_key, base_url=endpoint, max_retries=0)

    def _request(self, encoded_image: str, media_type: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=MAX_TOKENS,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "image", "source": {"type": "base64", "media_type": media_type, "data": encoded_image}},
                        {"type": "text", "text": EXTRACTION_PROMPT},
                    ],
                }
            ],
        )
        texts = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        return texts[0] if texts else ""


ORACLES: dict[str, type[VisionOracle]] = {
    "openai": OpenAIOracle,
    "anthropic": AnthropicOracle,
}


def build_oracle(settings: Settings) -> VisionOracle:
    oracle_cls = ORACLES.get(settings.ai_provider)
    if oracle_cls is None:
        raise ConfigurationError(
            f"unsupported AI provider: {settings.ai_provider} (expected one of {', '.join(ORACLES)})"
        )
    if not settings.ai_api_key:
        raise ConfigurationError("API key is required. Use --api-key or set AI_API_KEY.")

    return oracle_cls(
        api_key=settings.ai_api_key,
        endpoint=settings.ai_endpoint,
        model=settings.model,
        min_interval_seconds=settings.request_interval_seconds,
        max_retries=settings.max_request_retries,
        backoff_seconds=settings.retry_backoff_seconds,
    )
