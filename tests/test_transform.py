"""Tests for converting raw records into processed entries."""

from __future__ import annotations

import json

from cclog.models import Message, OtherBlock, RawRecord, TextBlock, ToolResultBlock, ToolUseBlock
from cclog.tokens import estimate_tokens
from cclog.transform import format_timestamp, parse_message, transform_record

from helpers import assistant, tool_result, tool_use, user, usage


def _entry(row: dict):
    return transform_record(RawRecord.model_validate(row))


class TestRawRecord:
    def test_camel_case_aliases(self):
        record = RawRecord.model_validate(
            {"uuid": "x", "parentUuid": "p", "isSidechain": True, "agentId": "a1", "gitBranch": "dev"}
        )
        assert record.parent_uuid == "p"
        assert record.is_sidechain is True
        assert record.agent_id == "a1"
        assert record.git_branch == "dev"

    def test_null_fields_normalised(self):
        record = RawRecord.model_validate({"uuid": "x", "agentId": None, "isSidechain": None, "timestamp": None})
        assert record.agent_id == ""
        assert record.is_sidechain is False
        assert record.timestamp == ""

    def test_extra_fields_allowed(self):
        record = RawRecord.model_validate({"uuid": "x", "requestId": "req_1", "somethingNew": 3})
        assert record.request_id == "req_1"


class TestContentBlocks:
    def test_known_and_unknown_block_kinds(self):
        message = Message.model_validate(
            {
                "role": "assistant",
                "content": [
                    {"type": "thinking", "thinking": "hmm"},
                    {"type": "text", "text": "hi"},
                    {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "ls"}},
                    {"type": "tool_result", "tool_use_id": "t0", "content": "done"},
                    {"type": "image", "source": {}},
                ],
            }
        )
        kinds = [type(block) for block in message.content]
        assert kinds == [OtherBlock, TextBlock, ToolUseBlock, ToolResultBlock, OtherBlock]

    def test_parse_message_accepts_json_string(self):
        message = parse_message(json.dumps({"role": "user", "content": "hello"}))
        assert message is not None
        assert message.content == "hello"

    def test_parse_message_rejects_non_objects(self):
        assert parse_message("not json {") is None
        assert parse_message([1, 2, 3]) is None
        assert parse_message({"role": "user", "content": 42}) is None


class TestTransformRecord:
    def test_text_blocks_joined_with_newlines(self):
        row = assistant("a1", "first", at=0)
        row["message"]["content"].append({"type": "text", "text": "second"})

        entry = _entry(row)

        assert entry.content == "first\nsecond"
        assert entry.role == "assistant"

    def test_tool_use_becomes_tool_call(self):
        entry = _entry(assistant("a1", at=0, tools=[tool_use("t1", "Bash", {"command": "ls -la"})]))

        assert len(entry.tool_calls) == 1
        call = entry.tool_calls[0]
        assert (call.id, call.name, call.raw_input) == ("t1", "Bash", {"command": "ls -la"})
        assert call.result is None

    def test_leading_tool_result_marks_carrier(self):
        entry = _entry(tool_result("r1", "t1", "output text", at=0, is_error=True, result_agent="agent-7"))

        assert entry.is_tool_result
        assert entry.tool_result_id == "t1"
        assert entry.is_error
        assert entry.content == "output text"
        assert entry.result_agent_id == "agent-7"

    def test_tool_result_with_nested_text_blocks(self):
        entry = _entry(tool_result("r1", "t1", [{"type": "text", "text": "line 1"}, {"type": "text", "text": "line 2"}]))

        assert entry.content == "line 1\nline 2"

    def test_tool_result_after_text_is_not_a_carrier(self):
        row = user("u1", [{"type": "text", "text": "see below"}, {"type": "tool_result", "tool_use_id": "t1", "content": "x"}])

        entry = _entry(row)

        assert not entry.is_tool_result

    def test_null_message_falls_back_to_record_type(self):
        entry = _entry({"uuid": "u1", "type": "user", "message": None, "timestamp": "2025-03-14T09:30:00Z"})

        assert entry.role == "user"
        assert entry.content == ""
        assert not entry.parse_failed

    def test_unparsable_message_estimates_tokens(self):
        row = {"uuid": "bad", "type": "assistant", "message": "not json {", "timestamp": "2025-03-14T09:30:00Z"}
        record = RawRecord.model_validate(row)

        entry = transform_record(record)

        assert entry.parse_failed
        assert entry.content == ""
        assert entry.token_count == estimate_tokens(record.model_dump_json(by_alias=True))
        assert entry.token_count > 0

    def test_assistant_token_count_uses_output_tokens(self):
        entry = _entry(assistant("a1", "hello", at=0, usage=usage(10, 7, 3, 2)))

        assert entry.token_count == 7
        assert (entry.input_tokens, entry.output_tokens) == (10, 7)
        assert (entry.cache_read_tokens, entry.cache_creation_tokens) == (3, 2)

    def test_user_token_count_is_estimated(self):
        entry = _entry(user("u1", "x" * 10, at=0))

        assert entry.token_count == 3

    def test_command_message_detected(self):
        content = "<command-name>/model</command-name>\n<command-args>opus</command-args>"

        entry = _entry(user("u1", content, at=0))

        assert entry.is_command_message
        assert entry.command_name == "/model"
        assert entry.command_args == "opus"

    def test_caveat_message_detected(self):
        content = (
            "Caveat: The messages below were generated by the user while running local commands. "
            "DO NOT respond to these messages."
        )

        assert _entry(user("u1", content, at=0)).is_caveat


class TestTimestamps:
    def test_display_format(self):
        assert format_timestamp("2025-03-14T09:30:05.123Z") == "09:30:05"

    def test_unparsable_passes_through(self):
        assert format_timestamp("yesterday") == "yesterday"

    def test_entry_keeps_raw_and_display(self):
        entry = _entry(user("u1", "hi", at=65))

        assert entry.raw_timestamp == "2025-03-14T09:31:05.000Z"
        assert entry.timestamp == "09:31:05"
