"""Tests for the JSON-RPC line protocol."""

import json

import pytest

from lanonasis.mcp.protocol import (
    CLIENT_NAME,
    PROTOCOL_VERSION,
    Notification,
    Response,
    format_notification,
    format_request,
    initialize_params,
    parse_line,
)


class TestParseLine:
    def test_result_response(self):
        msg = parse_line('{"jsonrpc": "2.0", "id": 3, "result": {"tools": []}}')
        assert isinstance(msg, Response)
        assert msg.id == 3
        assert msg.result == {"tools": []}
        assert not msg.is_error

    def test_error_response(self):
        msg = parse_line(
            '{"jsonrpc": "2.0", "id": 4, "error": {"code": -32601, "message": "no such method"}}'
        )
        assert isinstance(msg, Response)
        assert msg.is_error
        assert msg.error_message == "no such method"

    def test_notification(self):
        msg = parse_line('{"jsonrpc": "2.0", "method": "notifications/message", "params": {"level": "info"}}')
        assert isinstance(msg, Notification)
        assert msg.method == "notifications/message"
        assert msg.params == {"level": "info"}

    def test_server_request_stays_raw(self):
        msg = parse_line('{"jsonrpc": "2.0", "id": 9, "method": "roots/list"}')
        assert msg == {"jsonrpc": "2.0", "id": 9, "method": "roots/list"}

    def test_non_object(self):
        assert parse_line("[1, 2]") == {"raw": [1, 2]}

    @pytest.mark.parametrize(
        "line",
        [
            '{"jsonrpc": "2.0", "id": [1], "result": {}}',
            '{"jsonrpc": "2.0", "id": "abc", "result": {}}',
            '{"jsonrpc": "2.0", "id": true, "result": {}}',
            '{"jsonrpc": "2.0", "id": 5, "error": "boom"}',
        ],
    )
    def test_malformed_response_stays_raw(self, line):
        assert parse_line(line) == json.loads(line)

    def test_plain_log_line_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_line("MCP server listening on port 3000")


class TestFormat:
    def test_request(self):
        data = json.loads(format_request(1, "tools/list"))
        assert data == {"jsonrpc": "2.0", "id": 1, "method": "tools/list"}

    def test_request_with_params(self):
        data = json.loads(format_request(2, "tools/call", {"name": "search", "arguments": {}}))
        assert data["params"] == {"name": "search", "arguments": {}}

    def test_notification_has_no_id(self):
        data = json.loads(format_notification("notifications/initialized"))
        assert "id" not in data
        assert data["method"] == "notifications/initialized"

    def test_no_trailing_newline(self):
        assert not format_request(1, "ping").endswith("\n")

    def test_initialize_params(self):
        params = initialize_params("1.2.3")
        assert params["protocolVersion"] == PROTOCOL_VERSION
        assert params["clientInfo"] == {"name": CLIENT_NAME, "version": "1.2.3"}
