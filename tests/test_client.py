import asyncio
import io
import httpx
import pytest

from insightable.analysis.errors import (
    AuthError,
    MessageError,
    ParseError,
    PollTimeoutError,
    ResponseParseError,
    RunCreationError,
    RunFailedError,
    ThreadCreationError,
    TransportError,
    UploadError,
)
from insightable.analysis.client import latest_assistant_text
from insightable.analysis.models import (
    FileAttachmentItem,
    ImageFileItem,
    MessageContentPart,
    MessageObject,
    MessageText,
    TextItem,
    ToolResources,
)
from tests.common import FakeAssistantsAPI, make_client, make_config


def _message(role, created_at, *texts, parts=None):
    content = parts if parts is not None else [
        MessageContentPart(type="text", text=MessageText(value=t)) for t in texts
    ]
    return MessageObject(id=f"msg-{created_at}", role=role, created_at=created_at, content=content)


class TestAssistantsClient:

    @pytest.fixture
    def api(self):
        return FakeAssistantsAPI()

    @pytest.fixture
    def client(self, api):
        client, _ = make_client(api)
        return client

    @pytest.mark.asyncio
    async def test_kpi_scenario(self, api):
        api.run_scripts["asst-X"] = ["queued", "in_progress", "completed"]
        api.replies["asst-X"] = "Revenue is up 4%."
        client, sleep = make_client(api)

        file_id = await client.upload_file("kpi.csv", b"x" * 1024)
        assert file_id == "file-abc"
        thread_id = await client.create_thread()
        assert thread_id == "thread-1"
        await client.add_message(thread_id, [TextItem(text="Analyze this file."), FileAttachmentItem(file_id=file_id)])
        run_id = await client.create_run(thread_id, "asst-X")
        assert run_id == "run-1"
        run = await client.poll_run(thread_id, run_id)
        assert run.status == "completed"
        assert await client.fetch_latest_assistant_text(thread_id) == "Revenue is up 4%."
        assert sleep.delays == [2.0, 3.0, 4.5]
        await client.aclose()

    @pytest.mark.asyncio
    async def test_requests_carry_auth_and_version_headers(self, api, client):
        await client.create_thread()
        request = api.requests[0]
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["OpenAI-Beta"] == "assistants=v2"
        assert str(request.url) == "https://api.test/v1/threads"

    @pytest.mark.asyncio
    async def test_upload_is_multipart_for_assistants(self, api, client):
        await client.upload_file("report.xlsx", io.BytesIO(b"spreadsheet-bytes"))
        request = api.requests[0]
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        body = request.content
        assert b'name="purpose"' in body
        assert b"assistants" in body
        assert b'filename="report.xlsx"' in body
        assert b"spreadsheet-bytes" in body

    @pytest.mark.asyncio
    async def test_file_handle_is_reused_unchanged(self, api, client):
        file_id = await client.upload_file("kpi.csv", b"a,b\n1,2\n")
        thread_id = await client.create_thread()
        await client.ask(thread_id, "asst-X", [TextItem(text="Go"), FileAttachmentItem(file_id=file_id)],
                         tool_resources=ToolResources.for_code_interpreter([file_id]))

        message = api.json_bodies("POST", r"/threads/[^/]+/messages")[0]
        assert message["attachments"] == [{"file_id": "file-abc", "tools": [{"type": "code_interpreter"}]}]
        assert message["content"] == [{"type": "text", "text": "Go"}]
        run = api.json_bodies("POST", r"/threads/[^/]+/runs")[0]
        assert run == {"assistant_id": "asst-X", "tool_resources": {"code_interpreter": {"file_ids": ["file-abc"]}}}

    @pytest.mark.asyncio
    async def test_image_is_inlined_in_content(self, api, client):
        thread_id = await client.create_thread()
        await client.add_message(thread_id, [TextItem(text="What is this?"), ImageFileItem(file_id="file-img")])
        message = api.json_bodies("POST", r"/threads/[^/]+/messages")[0]
        assert message["content"][1] == {"type": "image_file", "image_file": {"file_id": "file-img"}}
        assert "attachments" not in message

    @pytest.mark.asyncio
    async def test_upload_rejects_empty_content(self, api, client):
        with pytest.raises(UploadError):
            await client.upload_file("empty.csv", b"")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_upload_rejects_unreadable_content(self, api, client):
        class Broken:
            def read(self):
                raise OSError("disk gone")

        with pytest.raises(UploadError):
            await client.upload_file("broken.csv", Broken())
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_upload_without_id_fails(self, api, client):
        api.overrides[("POST", "/files")] = httpx.Response(200, json={"object": "file"})
        with pytest.raises(UploadError) as exc_info:
            await client.upload_file("kpi.csv", b"data")
        assert isinstance(exc_info.value.__cause__, ParseError)

    @pytest.mark.asyncio
    async def test_upload_transport_failure(self, api, client):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        api.overrides[("POST", "/files")] = refuse
        with pytest.raises(UploadError) as exc_info:
            await client.upload_file("kpi.csv", b"data")
        assert isinstance(exc_info.value.__cause__, TransportError)

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_before_any_request(self, api):
        client, _ = make_client(api, config=make_config(api_key=""))
        with pytest.raises(AuthError):
            await client.upload_file("kpi.csv", b"data")
        with pytest.raises(AuthError):
            await client.create_thread()
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_rejected_credential_is_auth_error(self, api, client):
        api.overrides[("POST", "/threads")] = httpx.Response(
            401, json={"error": {"message": "Incorrect API key provided"}})
        with pytest.raises(AuthError) as exc_info:
            await client.create_thread()
        assert "Incorrect API key provided" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_thread_without_id_fails(self, api, client):
        api.overrides[("POST", "/threads")] = httpx.Response(200, json={"object": "thread"})
        with pytest.raises(ThreadCreationError):
            await client.create_thread()

    @pytest.mark.asyncio
    async def test_thread_body_not_json(self, api, client):
        api.overrides[("POST", "/threads")] = httpx.Response(200, text="<html>oops</html>")
        with pytest.raises(ThreadCreationError) as exc_info:
            await client.create_thread()
        assert isinstance(exc_info.value.__cause__, ParseError)

    @pytest.mark.asyncio
    async def test_message_error_carries_server_body(self, api, client):
        api.overrides[("POST", r"/threads/[^/]+/messages")] = httpx.Response(
            400, json={"error": {"message": "Invalid file id 'file-zzz'"}})
        with pytest.raises(MessageError) as exc_info:
            await client.add_message("thread-1", [TextItem(text="hi")])
        assert exc_info.value.detail == "Invalid file id 'file-zzz'"

    @pytest.mark.asyncio
    async def test_message_needs_items(self, api, client):
        with pytest.raises(MessageError):
            await client.add_message("thread-1", [])
        with pytest.raises(MessageError):
            await client.add_message("thread-1", [FileAttachmentItem(file_id="file-abc")])
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_run_creation_failure(self, api, client):
        api.overrides[("POST", r"/threads/[^/]+/runs")] = httpx.Response(
            404, json={"error": {"message": "No assistant found with id 'asst-missing'"}})
        with pytest.raises(RunCreationError):
            await client.create_run("thread-1", "asst-missing")

    @pytest.mark.asyncio
    async def test_run_requires_assistant_id(self, api, client):
        with pytest.raises(RunCreationError):
            await client.create_run("thread-1", "")
        assert api.requests == []

    @pytest.mark.asyncio
    async def test_poll_timeout_stops_requests(self, api):
        api.run_scripts["asst-slow"] = ["queued"] * 20
        client, sleep = make_client(api)
        thread_id = await client.create_thread()
        with pytest.raises(PollTimeoutError):
            await client.run_to_completion(thread_id, "asst-slow")
        assert api.count("GET", r"/threads/[^/]+/runs/[^/]+") == 10
        assert len(sleep.delays) == 10

    @pytest.mark.asyncio
    async def test_run_failure_reason_is_propagated(self, api, client):
        api.run_scripts["asst-X"] = ["in_progress", "failed"]
        api.failures["asst-X"] = "rate limited"
        thread_id = await client.create_thread()
        with pytest.raises(RunFailedError) as exc_info:
            await client.run_to_completion(thread_id, "asst-X")
        assert exc_info.value.message == "rate limited"
        assert api.count("GET", r"/threads/[^/]+/runs/[^/]+") == 2

    @pytest.mark.asyncio
    async def test_sequential_runs_on_one_thread_do_not_overlap(self, api, client):
        api.run_scripts["asst-summary"] = ["queued", "in_progress", "completed"]
        api.run_scripts["asst-insights"] = ["in_progress", "completed"]
        thread_id = await client.create_thread()
        await client.add_message(thread_id, [TextItem(text="Analyze this file.")])

        first, second = await asyncio.gather(
            client.run_to_completion(thread_id, "asst-summary"),
            client.run_to_completion(thread_id, "asst-insights"),
        )
        assert first.status == "completed"
        assert second.status == "completed"
        assert api.events == [("created", "run-1"), ("terminal", "run-1"),
                              ("created", "run-2"), ("terminal", "run-2")]

    @pytest.mark.asyncio
    async def test_ask_returns_latest_reply(self, api, client):
        api.replies["asst-chat"] = "Churn is stable."
        thread_id = await client.create_thread()
        api.add_message(thread_id, "assistant", ["An older answer"])
        reply = await client.ask(thread_id, "asst-chat", [TextItem(text="How is churn?")])
        assert reply == "Churn is stable."

    @pytest.mark.asyncio
    async def test_fetch_latest_without_assistant_message(self, api, client):
        thread_id = await client.create_thread()
        api.add_message(thread_id, "user", ["hello"])
        with pytest.raises(ResponseParseError):
            await client.fetch_latest_assistant_text(thread_id)

    @pytest.mark.asyncio
    async def test_fetch_latest_malformed_list(self, api, client):
        api.overrides[("GET", r"/threads/[^/]+/messages")] = httpx.Response(
            200, json={"data": [{"role": "assistant", "created_at": 1,
                                 "content": [{"type": "text", "text": {"annotations": []}}]}]})
        with pytest.raises(ResponseParseError):
            await client.fetch_latest_assistant_text("thread-1")


class TestLatestAssistantText:

    def test_picks_greatest_created_at(self):
        messages = [
            _message("assistant", 10, "old"),
            _message("assistant", 30, "newest"),
            _message("user", 40, "question after"),
            _message("assistant", 20, "middle"),
        ]
        assert latest_assistant_text(messages) == "newest"

    def test_joins_text_parts_with_blank_line(self):
        messages = [_message("assistant", 5, "Summary", "Insights", "Next steps")]
        assert latest_assistant_text(messages) == "Summary\n\nInsights\n\nNext steps"

    def test_skips_image_parts(self):
        parts = [
            MessageContentPart(type="text", text=MessageText(value="Chart below")),
            MessageContentPart(type="image_file"),
            MessageContentPart(type="text", text=MessageText(value="Trend is up")),
        ]
        messages = [_message("assistant", 5, parts=parts)]
        assert latest_assistant_text(messages) == "Chart below\n\nTrend is up"

    def test_text_part_without_text(self):
        messages = [_message("assistant", 5, parts=[MessageContentPart(type="text")])]
        with pytest.raises(ResponseParseError):
            latest_assistant_text(messages)

    def test_no_assistant_message(self):
        with pytest.raises(ResponseParseError):
            latest_assistant_text([_message("user", 1, "hi")])
        with pytest.raises(ResponseParseError):
            latest_assistant_text([])
