"""
Unit tests for the Manifold frame parser.

Pure functions only: no sockets, no event loop.
"""

from __future__ import annotations

import json

import pytest

from edgewatch.connectors.manifold_protocol import (
    FrameType,
    ack_fields,
    build_ping,
    build_subscribe,
    build_unsubscribe,
    encode,
    is_ack,
    is_broadcast,
    parse_frame,
    parse_new_contract,
)
from edgewatch.core.errors import FrameParseError

from manifold_fakes import new_contract_frame


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class TestBuilders:
    def test_subscribe(self):
        frame = build_subscribe(1, ("global/new-contract",))
        assert frame == {"type": "subscribe", "txid": 1, "topics": ["global/new-contract"]}

    def test_unsubscribe(self):
        assert build_unsubscribe(4, ["a", "b"]) == {"type": "unsubscribe", "txid": 4, "topics": ["a", "b"]}

    def test_ping(self):
        assert build_ping(7) == {"type": "ping", "txid": 7}

    def test_encode_is_compact_json(self):
        text = encode(build_ping(2))
        assert " " not in text
        assert json.loads(text) == {"type": "ping", "txid": 2}


# ---------------------------------------------------------------------------
# parse_frame
# ---------------------------------------------------------------------------

class TestParseFrame:
    def test_ack(self):
        frame = parse_frame('{"type": "ack", "txid": 1, "success": true}')
        assert frame.msg_type == FrameType.ACK
        assert is_ack(frame)
        assert not is_broadcast(frame)

    def test_bytes_are_decoded(self):
        frame = parse_frame(b'{"type": "ack", "txid": 3, "success": true}')
        assert ack_fields(frame) == (3, True)

    @pytest.mark.parametrize("text", [
        "not json",
        "{truncated",
        "",
    ])
    def test_invalid_json(self, text):
        with pytest.raises(FrameParseError):
            parse_frame(text)

    def test_non_object(self):
        with pytest.raises(FrameParseError, match="not an object"):
            parse_frame("[1, 2, 3]")

    def test_missing_type(self):
        with pytest.raises(FrameParseError):
            parse_frame('{"txid": 1}')

    def test_non_string_type(self):
        with pytest.raises(FrameParseError):
            parse_frame('{"type": 5}')

    def test_undecodable_bytes(self):
        with pytest.raises(FrameParseError):
            parse_frame(b"\xff\xfe\xfa")


class TestAckFields:
    def test_success_defaults_false(self):
        frame = parse_frame('{"type": "ack", "txid": 9}')
        assert ack_fields(frame) == (9, False)

    def test_rejects_non_integer_txid(self):
        frame = parse_frame('{"type": "ack", "txid": "9", "success": true}')
        with pytest.raises(FrameParseError):
            ack_fields(frame)

    def test_rejects_bool_txid(self):
        frame = parse_frame('{"type": "ack", "txid": true, "success": true}')
        with pytest.raises(FrameParseError):
            ack_fields(frame)


# ---------------------------------------------------------------------------
# Broadcasts
# ---------------------------------------------------------------------------

class TestNewContract:
    def test_topic_match(self):
        frame = parse_frame(json.dumps(new_contract_frame()))
        assert is_broadcast(frame)
        assert is_broadcast(frame, "global/new-contract")
        assert not is_broadcast(frame, "global/new-bet")

    def test_parse_fields(self):
        frame = parse_frame(json.dumps(new_contract_frame(probability=0.37)))
        market = parse_new_contract(frame)

        assert market.id == "mkt-1"
        assert market.question == "Will it rain tomorrow?"
        assert market.outcome_type == "BINARY"
        assert market.mechanism == "cpmm-1"
        assert market.visibility == "public"
        assert market.is_resolved is False
        assert market.probability == pytest.approx(0.37)
        assert market.created_time == 1_700_000_000_000
        assert market.close_time == 1_700_086_400_000
        assert market.creator_username == "alice"
        assert market.total_liquidity == pytest.approx(250.0)
        assert market.text_description.startswith("Resolves YES")

    def test_multiple_choice_has_no_probability(self):
        raw = new_contract_frame(outcomeType="MULTIPLE_CHOICE")
        del raw["data"]["contract"]["probability"]
        market = parse_new_contract(parse_frame(json.dumps(raw)))
        assert market.outcome_type == "MULTIPLE_CHOICE"
        assert market.probability is None

    def test_missing_contract(self):
        frame = parse_frame('{"type": "broadcast", "topic": "global/new-contract", "data": {}}')
        with pytest.raises(FrameParseError):
            parse_new_contract(frame)

    def test_missing_required_field(self):
        raw = new_contract_frame()
        del raw["data"]["contract"]["question"]
        with pytest.raises(FrameParseError, match="bad contract payload"):
            parse_new_contract(parse_frame(json.dumps(raw)))

    def test_bad_timestamp(self):
        raw = new_contract_frame(createdTime="yesterday")
        with pytest.raises(FrameParseError):
            parse_new_contract(parse_frame(json.dumps(raw)))

    def test_binary_without_probability_rejected(self):
        raw = new_contract_frame()
        del raw["data"]["contract"]["probability"]
        with pytest.raises(FrameParseError, match="without probability"):
            parse_new_contract(parse_frame(json.dumps(raw)))

    def test_binary_with_null_probability_rejected(self):
        raw = new_contract_frame(probability=None)
        with pytest.raises(FrameParseError):
            parse_new_contract(parse_frame(json.dumps(raw)))
