from __future__ import annotations

import asyncio

import pytest

import subscription_detection.external as external_mod
from subscription_detection import (
    InMemoryCandidateSink,
    InMemoryTransactionSource,
    detect_recurring_patterns,
    detect_subscriptions,
    detect_subscriptions_with_ai,
)
from tests.helpers.openai_stub import AsyncOpenAIStub
from tests.helpers.transactions import series, tx


def _source() -> InMemoryTransactionSource:
    source = InMemoryTransactionSource(
        {"u1": series("Spotify USA", "-9.99", "2024-01-03", [30, 30, 30], id_prefix="sp")}
    )
    source.add("u1", [tx("AMAZON", "-23.47", "2024-02-11")])
    source.add("u2", [tx("AMAZON", "-23.47", "2024-02-11")])
    return source


def test_detect_subscriptions_reads_source_and_writes_sink():
    sink = InMemoryCandidateSink()

    out = detect_subscriptions("u1", source=_source(), sink=sink)

    assert [c.merchant for c in out] == ["SPOTIFY USA"]
    assert sink.for_user("u1") == out
    assert sink.for_user("u2") == []


def test_detect_subscriptions_without_sink_or_candidates():
    assert detect_subscriptions("u2", source=_source()) == []
    assert detect_subscriptions("unknown", source=_source()) == []


def test_empty_result_is_not_written():
    class _FailingSink:
        def save_candidates(self, user_id, candidates):
            raise AssertionError("sink must not be called")

    assert detect_subscriptions("u2", source=_source(), sink=_FailingSink()) == []


def test_source_errors_propagate():
    class _Broken:
        def list_transactions(self, user_id):
            raise ConnectionError("db down")

    with pytest.raises(ConnectionError):
        detect_subscriptions("u1", source=_Broken())


def test_ai_entry_point_falls_back_and_still_delivers(monkeypatch: pytest.MonkeyPatch):
    def _boom(payload):
        raise TimeoutError("upstream timed out")

    stub = AsyncOpenAIStub(_boom)
    monkeypatch.setattr(external_mod, "AsyncOpenAI", stub.factory)
    source = _source()
    sink = InMemoryCandidateSink()

    out = asyncio.run(detect_subscriptions_with_ai("u1", source=source, sink=sink))

    assert out == detect_recurring_patterns(source.list_transactions("u1"))
    assert sink.for_user("u1") == out
    assert len(stub.calls) == 1


def test_ai_entry_point_uses_external_answer(monkeypatch: pytest.MonkeyPatch):
    stub = AsyncOpenAIStub(
        lambda payload: {
            "subscriptions": [
                {
                    "merchant": "Spotify USA",
                    "amount": 9.99,
                    "frequency": "monthly",
                    "confidence": 0.8,
                }
            ]
        }
    )
    monkeypatch.setattr(external_mod, "AsyncOpenAI", stub.factory)

    (cand,) = asyncio.run(detect_subscriptions_with_ai("u1", source=_source()))

    assert cand.merchant == "SPOTIFY USA"
    assert cand.confidence == 0.8
    assert len(cand.member_transactions) == 4
