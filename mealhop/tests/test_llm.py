import json
from unittest.mock import MagicMock, patch

import httpx
import pytest
from groq import APIConnectionError, APIStatusError, APITimeoutError, AuthenticationError

from mealhop.llm.config import LLMConfig
from mealhop.llm.groq_client import build_user_message, parse_model_json, request_ranking
from mealhop.recommendations.errors import (
    ExternalRankerError,
    ModelLoadingError,
    RankerResponseError,
    RankerUnavailableError,
)

from .factories import NOON, make_candidate, make_request

SAMPLE_CANDIDATES = [
    make_candidate("r1", "m1", name="Grilled Chicken Salad", restaurant={"name": "Green Fork"}),
    make_candidate("r2", "m2", name="Salmon Rice Bowl", restaurant={"name": "Sakura Bowl"}),
]
SAMPLE_REQUEST = make_request(last_meal="oatmeal", last_meal_time="8:00am")

ENABLED_CONFIG = LLMConfig(api_key="test-key", enabled=True)
DISABLED_CONFIG = LLMConfig(api_key="test-key", enabled=False)
NO_KEY_CONFIG = LLMConfig(api_key="", enabled=True)

_GROQ_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _mock_groq_response(content: str) -> MagicMock:
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


def _status_error(cls, status: int, headers: dict | None = None, body: object = None):
    response = httpx.Response(status, headers=headers or {}, request=_GROQ_REQUEST)
    return cls(f"status {status}", response=response, body=body)


def _rows_payload() -> str:
    return json.dumps({
        "results": [
            {
                "restaurant": {"id": "r2", "name": "Sakura Bowl"},
                "item": {"id": "m2", "name": "Salmon Rice Bowl"},
                "why": "Lean protein with omega-3s.",
            },
            {
                "restaurant": {"id": "r1", "name": "Green Fork"},
                "item": {"id": "m1", "name": "Grilled Chicken Salad"},
                "why": "Light and protein-forward.",
            },
        ]
    })


# ── Prompt ───────────────────────────────────────────────────────────────


def test_user_message_carries_request_context_without_coordinates():
    message = build_user_message(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON)

    assert '"goal": "high-protein"' in message
    assert '"timeOfDay": "lunch"' in message
    assert '"lastMeal": "oatmeal"' in message
    assert '"localTime": "12:30"' in message
    assert '"lat"' not in message
    assert "Salmon Rice Bowl" in message
    assert "Sakura Bowl" in message


# ── Response parsing ─────────────────────────────────────────────────────


def test_parse_plain_json():
    assert parse_model_json('{"results": []}') == {"results": []}


def test_parse_fenced_json():
    assert parse_model_json('```json\n{"results": [1]}\n```') == {"results": [1]}


def test_parse_json_wrapped_in_chatter():
    content = 'Here are your picks:\n{"results": [{"why": "tasty"}]}\nEnjoy!'

    assert parse_model_json(content) == {"results": [{"why": "tasty"}]}


@pytest.mark.parametrize("content", ["not valid json{{{", "", "[1, 2, 3]"])
def test_parse_failure_raises(content):
    with pytest.raises(RankerResponseError):
        parse_model_json(content)


# ── Groq call ────────────────────────────────────────────────────────────


@patch("mealhop.llm.groq_client.Groq")
def test_request_ranking_returns_rows_in_model_order(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(
        _rows_payload()
    )

    rows = request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)

    assert [row["item"]["id"] for row in rows] == ["m2", "m1"]
    assert rows[0]["why"] == "Lean protein with omega-3s."

    mock_groq_cls.assert_called_once_with(api_key="test-key", timeout=10.0, max_retries=0)
    kwargs = mock_groq_cls.return_value.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == ENABLED_CONFIG.model
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0]["role"] == "system"


@patch("mealhop.llm.groq_client.Groq")
def test_request_ranking_skips_non_object_rows(mock_groq_cls):
    content = json.dumps({"results": ["junk", {"item": {"id": "m1"}}]})
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(content)

    rows = request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)

    assert rows == [{"item": {"id": "m1"}}]


@patch("mealhop.llm.groq_client.Groq")
def test_request_ranking_bad_json(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response("nope")

    with pytest.raises(RankerResponseError):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)


@patch("mealhop.llm.groq_client.Groq")
def test_request_ranking_missing_results_list(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.return_value = _mock_groq_response(
        '{"recommendations": []}'
    )

    with pytest.raises(RankerResponseError):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)


def test_request_ranking_disabled():
    with pytest.raises(RankerUnavailableError):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=DISABLED_CONFIG)


def test_request_ranking_without_api_key():
    with pytest.raises(RankerUnavailableError):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=NO_KEY_CONFIG)


@patch("mealhop.llm.groq_client.Groq")
def test_request_ranking_empty_candidates(mock_groq_cls):
    assert request_ranking([], SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG) == []
    mock_groq_cls.assert_not_called()


@patch("mealhop.llm.groq_client.Groq")
def test_rejected_credentials(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = _status_error(
        AuthenticationError, 401
    )

    with pytest.raises(RankerUnavailableError):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)


@patch("mealhop.llm.groq_client.Groq")
def test_model_loading_uses_retry_after_header(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = _status_error(
        APIStatusError, 503, headers={"retry-after": "20"}
    )

    with pytest.raises(ModelLoadingError) as excinfo:
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)

    assert excinfo.value.retry_after == 20.0
    assert "20s" in str(excinfo.value)


@patch("mealhop.llm.groq_client.Groq")
def test_model_loading_uses_estimated_time_then_default(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create

    create.side_effect = _status_error(APIStatusError, 503, body={"estimated_time": 7.5})
    with pytest.raises(ModelLoadingError) as excinfo:
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)
    assert excinfo.value.retry_after == 7.5

    create.side_effect = _status_error(APIStatusError, 503)
    with pytest.raises(ModelLoadingError) as excinfo:
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)
    assert excinfo.value.retry_after == 10.0


@patch("mealhop.llm.groq_client.Groq")
def test_other_status_errors(mock_groq_cls):
    mock_groq_cls.return_value.chat.completions.create.side_effect = _status_error(
        APIStatusError, 500
    )

    with pytest.raises(ExternalRankerError) as excinfo:
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)

    assert not isinstance(excinfo.value, ModelLoadingError)
    assert "500" in str(excinfo.value)


@patch("mealhop.llm.groq_client.Groq")
def test_timeout_and_connection_errors(mock_groq_cls):
    create = mock_groq_cls.return_value.chat.completions.create

    create.side_effect = APITimeoutError(request=_GROQ_REQUEST)
    with pytest.raises(ExternalRankerError, match="timed out"):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)

    create.side_effect = APIConnectionError(request=_GROQ_REQUEST)
    with pytest.raises(ExternalRankerError, match="Could not reach Groq"):
        request_ranking(SAMPLE_CANDIDATES, SAMPLE_REQUEST, NOON, config=ENABLED_CONFIG)
