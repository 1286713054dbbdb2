"""End-to-end tests for the serve loop over an in-memory stream."""

import io
import json

import pytest

from mcbridge.protocol.transport import StdioTransport
from mcbridge.server import PROTOCOL_VERSION, BridgeServer


class Client:
    """Feeds frames to a server one at a time and collects what it writes."""

    def __init__(self, context):
        self.output = io.BytesIO()
        self.server = BridgeServer(context, StdioTransport(io.BytesIO(), self.output))
        self._read = 0
        self._next_id = 0

    def send_raw(self, frame: bytes):
        self.server.handle_frame(frame)
        return self.drain()

    def drain(self):
        data = self.output.getvalue()[self._read:]
        self._read += len(data)
        return [json.loads(line) for line in data.splitlines() if line.strip()]

    def request(self, method, params=None):
        self._next_id += 1
        message = {"jsonrpc": "2.0", "id": self._next_id, "method": method}
        if params is not None:
            message["params"] = params
        messages = self.send_raw(json.dumps(message).encode())
        response = messages[-1]
        assert response["id"] == self._next_id
        return response

    def call(self, name, arguments=None):
        return self.request("tools/call", {"name": name, "arguments": arguments or {}})


@pytest.fixture
def client(context):
    return Client(context)


def serve(context, frames):
    output = io.BytesIO()
    reader = io.BytesIO(b"".join(frames))
    server = BridgeServer(context, StdioTransport(reader, output))
    exit_code = server.serve()
    messages = [json.loads(line) for line in output.getvalue().splitlines() if line.strip()]
    return exit_code, messages


def frame(message):
    return json.dumps(message).encode() + b"\n"


class TestServeLoop:
    """Tests for BridgeServer.serve."""

    def test_responses_in_order_and_eof(self, context):
        exit_code, messages = serve(
            context,
            [
                frame({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}),
                frame({"jsonrpc": "2.0", "method": "notifications/initialized"}),
                frame({"jsonrpc": "2.0", "id": "two", "method": "ping"}),
                frame({"jsonrpc": "2.0", "id": 3, "method": "tools/list"}),
            ],
        )

        assert exit_code == 0
        assert [m["id"] for m in messages] == [1, "two", 3]
        assert messages[0]["result"]["protocolVersion"] == PROTOCOL_VERSION
        assert messages[0]["result"]["serverInfo"]["name"] == "mcbridge"
        assert messages[1]["result"] == {}
        assert len(messages[2]["result"]["tools"]) == 19

    def test_shutdown_stops_reading(self, context):
        exit_code, messages = serve(
            context,
            [
                frame({"jsonrpc": "2.0", "id": 1, "method": "shutdown"}),
                frame({"jsonrpc": "2.0", "id": 2, "method": "ping"}),
            ],
        )

        assert exit_code == 0
        assert [m["id"] for m in messages] == [1]

    def test_bad_frame_does_not_stop_the_loop(self, context):
        _, messages = serve(
            context,
            [b"{not json\n", frame({"jsonrpc": "2.0", "id": 1, "method": "ping"})],
        )

        assert messages[0]["id"] is None
        assert messages[0]["error"]["code"] == -32700
        assert messages[1] == {"jsonrpc": "2.0", "id": 1, "result": {}}

    def test_content_length_framing(self, context):
        body = json.dumps({"jsonrpc": "2.0", "id": 7, "method": "ping"}).encode()
        reader = io.BytesIO(b"Content-Length: %d\r\n\r\n" % len(body) + body)
        output = io.BytesIO()

        BridgeServer(context, StdioTransport(reader, output)).serve()

        header, _, payload = output.getvalue().partition(b"\r\n\r\n")
        assert header == b"Content-Length: %d" % len(payload)
        assert json.loads(payload)["id"] == 7


class TestMethods:
    """Tests for the protocol method table."""

    def test_unknown_method(self, client):
        response = client.request("tools/explode")
        assert response["error"]["code"] == -32601

    def test_invalid_request(self, client):
        [response] = client.send_raw(b'{"jsonrpc": "1.0", "id": 4, "method": "ping"}')
        assert response["id"] == 4
        assert response["error"]["code"] == -32600

    def test_notification_gets_no_response(self, client):
        assert client.send_raw(b'{"jsonrpc": "2.0", "method": "ping"}') == []

    def test_tool_result_has_text_content(self, client):
        result = client.call("read_file", {"path": "a.txt"})["result"]

        assert result["content"][0]["type"] == "text"
        assert json.loads(result["content"][0]["text"])["content"] == "hello\nworld\n"

    def test_invalid_tool_params(self, client):
        response = client.call("read_file", {"path": 12})

        assert response["error"]["code"] == -32602
        assert response["error"]["data"]["tool"] == "read_file"

    def test_missing_call_name(self, client):
        response = client.request("tools/call", {"arguments": {}})
        assert response["error"]["code"] == -32602

    def test_path_violation(self, client):
        response = client.call("read_file", {"path": "/etc/passwd"})

        assert response["error"]["code"] == -32001
        assert response["error"]["data"]["kind"] == "PathViolation"

    def test_apply_flow(self, client):
        planned = client.call("plan")["result"]
        assert planned["summary"] == "2 to add, 0 to change, 0 to destroy"

        staged = client.call("apply")["result"]
        assert staged["status"] == "awaiting_confirmation"

        done = client.request("tools/confirm", {"token": staged["token"]})["result"]
        assert done["status"] == "completed"
        assert done["resources_added"] == 2

        again = client.request("tools/confirm", {"token": staged["token"]})
        assert again["error"]["code"] == -32002

    def test_cancel(self, client):
        staged = client.call("delete_file", {"path": "a.txt"})["result"]

        cancelled = client.request("tools/cancel", {"token": staged["token"]})["result"]

        assert cancelled["status"] == "cancelled"
        assert (client.server.context.session.project_root / "a.txt").exists()

    def test_engine_failure(self, make_context):
        client = Client(make_context(engine_env={"FAKE_TF_FAIL": "state"}))

        response = client.call("state_list")

        assert response["error"]["code"] == -32003
        assert response["error"]["data"]["exit_code"] == 1

    def test_progress_notifications(self, make_context):
        client = Client(make_context(stream_progress=True))

        messages = client.send_raw(
            frame({"jsonrpc": "2.0", "id": 1, "method": "tools/call", "params": {"name": "plan"}})
        )

        progress = [m for m in messages if m.get("method") == "notifications/message"]
        assert any("Plan: 2 to add" in m["params"]["data"] for m in progress)
        assert "id" not in progress[0]
        assert messages[-1]["id"] == 1
