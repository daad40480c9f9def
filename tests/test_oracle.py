from dataclasses import replace
from types import SimpleNamespace

import pytest

from rankflow.config import Settings
from rankflow.errors import ConfigurationError, ExtractionFailure
from rankflow.oracle import (
    AnthropicOracle,
    OpenAIOracle,
    VisionOracle,
    build_oracle,
    estimate_cost,
    parse_ranking_response,
)
from rankflow.schemas import Record


class StatusError(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class ReplayOracle(VisionOracle):
    provider = "replay"

    def __init__(self, replies: list[object], **kwargs) -> None:
        kwargs.setdefault("model", "test-model")
        super().__init__(**kwargs)
        self.replies = list(replies)
        self.sent: list[tuple[str, str]] = []

    def _request(self, encoded_image: str, media_type: str) -> str:
        self.sent.append((encoded_image, media_type))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


REPLY = '{"rankings": [{"rank": 1, "commanderName": "Ada", "points": 1500}]}'


def test_parse_plain_json() -> None:
    assert parse_ranking_response(REPLY) == [Record(1, "Ada", 1500)]


def test_parse_json_wrapped_in_prose() -> None:
    text = f"Here are the rankings:\n```json\n{REPLY}\n```\nDone."

    assert parse_ranking_response(text) == [Record(1, "Ada", 1500)]


def test_parse_skips_unreadable_entries() -> None:
    text = (
        '{"rankings": ['
        '{"rank": 1, "commanderName": "Ada", "points": 10},'
        '{"rank": null, "commanderName": "Bob", "points": 9},'
        '{"rank": 3, "commanderName": "", "points": 8},'
        '{"rank": 4, "commanderName": 1234, "points": 7.0}'
        "]}"
    )

    assert parse_ranking_response(text) == [Record(1, "Ada", 10), Record(4, "1234", 7)]


@pytest.mark.parametrize("text", ["no json here", '{"rows": []}', "{not json}"])
def test_parse_rejects_malformed_payloads(text: str) -> None:
    with pytest.raises(ValueError):
        parse_ranking_response(text)


def test_extract_sends_base64_image_and_counts_requests() -> None:
    oracle = ReplayOracle([REPLY], min_interval_seconds=0)

    records = oracle.extract(b"\x89PNG", "image/png")

    assert records == [Record(1, "Ada", 1500)]
    assert oracle.sent == [("iVBORw==", "image/png")]
    assert oracle.usage_stats() == {"request_count": 1, "provider": "replay"}


def test_transient_status_is_retried() -> None:
    sleeps: list[float] = []
    oracle = ReplayOracle([StatusError(429), REPLY], min_interval_seconds=0, max_retries=2, backoff_seconds=0.5, sleep=sleeps.append)

    assert oracle.extract(b"img") == [Record(1, "Ada", 1500)]
    assert oracle.request_count == 2
    assert sleeps == [0.5]


def test_client_error_is_not_retried() -> None:
    oracle = ReplayOracle([StatusError(401), REPLY], min_interval_seconds=0, max_retries=2, sleep=lambda _: None)

    with pytest.raises(ExtractionFailure) as excinfo:
        oracle.extract(b"img")

    assert excinfo.value.provider == "replay"
    assert excinfo.value.status_code == 401
    assert oracle.request_count == 1


def test_unparsable_reply_becomes_extraction_failure() -> None:
    oracle = ReplayOracle(["I cannot read this image."], min_interval_seconds=0)

    with pytest.raises(ExtractionFailure, match="failed to parse AI response"):
        oracle.extract(b"img")


def test_requests_are_spaced_by_min_interval() -> None:
    now = [100.0]
    sleeps: list[float] = []
    oracle = ReplayOracle([REPLY, REPLY], min_interval_seconds=1.0, clock=lambda: now[0], sleep=sleeps.append)

    oracle.extract(b"one")
    now[0] += 0.25
    oracle.extract(b"two")

    assert sleeps == [0.75]


def test_openai_oracle_reads_first_choice() -> None:
    calls: list[dict] = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=REPLY))])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    oracle = OpenAIOracle(api_key="k", client=client, model="gpt-4o", min_interval_seconds=0)

    assert oracle.extract(b"img", "image/jpeg") == [Record(1, "Ada", 1500)]
    content = calls[0]["messages"][0]["content"]
    assert calls[0]["model"] == "gpt-4o"
    assert content[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_anthropic_oracle_reads_text_block() -> None:
    calls: list[dict] = []

    def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=REPLY)])

    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    oracle = AnthropicOracle(api_key="k", client=client, model="claude", min_interval_seconds=0)

    assert oracle.extract(b"img", "image/png") == [Record(1, "Ada", 1500)]
    image_block = calls[0]["messages"][0]["content"][0]
    assert image_block["source"]["media_type"] == "image/png"


def test_build_oracle_validates_configuration(test_settings: Settings) -> None:
    with pytest.raises(ConfigurationError, match="unsupported AI provider"):
        build_oracle(replace(test_settings, ai_provider="mystery"))
    with pytest.raises(ConfigurationError, match="API key is required"):
        build_oracle(replace(test_settings, ai_api_key=None))

    oracle = build_oracle(replace(test_settings, ai_provider="anthropic"))

    assert isinstance(oracle, AnthropicOracle)
    assert oracle.model == "claude-3-opus-20240229"


def test_estimate_cost_uses_injected_prices() -> None:
    assert estimate_cost(10, "anthropic", "claude", {"anthropic": 0.015}) == "Estimated cost: $0.15 USD (claude)"
    assert estimate_cost(3, "other", "m", {"openai": 0.5}) == "Estimated cost: $1.50 USD (m)"
