"""Session-level tests: upload → extraction → edits → chat, end to end with a fake AI."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import asyncio
import io

import openpyxl
import pytest

from file_analyzer.errors import AIRequestError, MalformedAIResponseError, UnsupportedFormatError
from file_analyzer.llm import AIResponse
from file_analyzer.schemas import FormatKind, GroundingChunk, GroundingMetadata, GroundingSource
from file_analyzer.session import NO_TABLE_NOTICE, Session
from file_analyzer.storage import MemoryCache

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

FENCED_THREE_ROWS = """```json
[
  {"Name": "Ada", "Qty": 3},
  {"Name": "", "Qty": ""},
  {"Name": "Alan", "Qty": 5}
]
```"""


def two_sheet_workbook() -> bytes:
    wb = openpyxl.Workbook()
    orders = wb.active
    orders.title = "Orders"
    for row in [["Name", "Qty"], ["Ada", 3], ["Alan", 5]]:
        orders.append(row)
    notes = wb.create_sheet("Notes")
    notes.append(["Checked by", "Grace"])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


class TestUpload:

    def test_spreadsheet_end_to_end(self, make_client):
        client = make_client(FENCED_THREE_ROWS)
        session = Session(client=client)

        result = asyncio.run(session.upload(two_sheet_workbook(), XLSX_MIME, "orders.xlsx"))

        prompt = client.requests[0].parts[0].text
        assert prompt.count("Sheet: ") == 2
        assert "Sheet: Orders" in prompt and "Sheet: Notes" in prompt
        assert len(result.table) == 3
        assert session.table == [{"Name": "Ada", "Qty": "3"}, {"Name": "Alan", "Qty": "5"}]
        assert session.format_kind == FormatKind.SPREADSHEET
        assert session.notice is None

    def test_table_cached_and_restored(self, make_client):
        cache = MemoryCache()
        session = Session(client=make_client('[{"a": "1"}]'), cache=cache)
        asyncio.run(session.upload(b"a\n1", "text/plain", "a.txt"))

        restored = Session(client=make_client(), cache=cache)
        assert restored.table == [{"a": "1"}]

    def test_empty_extraction_sets_notice(self, make_client):
        session = Session(client=make_client("[]"))
        asyncio.run(session.upload(b"nothing tabular", "text/plain", "n.txt"))
        assert session.table == []
        assert session.notice == NO_TABLE_NOTICE

    def test_grounding_only_response_sets_notice(self, make_client):
        grounding = GroundingMetadata(
            grounding_chunks=[GroundingChunk(web=GroundingSource(uri="https://x.example", title="X"))],
        )
        session = Session(client=make_client(AIResponse(text=None, grounding_metadata=grounding)))
        asyncio.run(session.upload(b"prose only", "text/plain", "p.txt"))
        assert session.table == []
        assert session.grounding_metadata is None
        assert session.notice == NO_TABLE_NOTICE

    def test_unsupported_file_records_error(self, make_client):
        session = Session(client=make_client())
        with pytest.raises(UnsupportedFormatError):
            asyncio.run(session.upload(b"\xff\xfe\x81", "application/zip", "a.zip"))
        assert session.error
        assert session.payload is None

    def test_ai_failure_keeps_raw_content_for_chat(self, make_client):
        client = make_client("not json at all", "The file lists two values.")
        session = Session(client=client)

        with pytest.raises(MalformedAIResponseError):
            asyncio.run(session.upload(b"a,b\n1,2", "application/vnd.ms-excel", "d.csv"))

        assert session.table == []
        assert session.payload.content == "Sheet: Sheet1\na\tb\n1\t2"
        assert session.can_chat

        reply = asyncio.run(session.send_message("What is in the file?"))
        assert reply.text == "The file lists two values."
        assert "Sheet: Sheet1" in client.requests[1].parts[0].text

    def test_new_upload_replaces_state(self, make_client):
        session = Session(client=make_client('[{"a": "1"}]', "answer", '[{"b": "2"}]'))
        asyncio.run(session.upload(b"x", "text/plain", "one.txt"))
        asyncio.run(session.send_message("question"))
        session.toggle_select_all()

        asyncio.run(session.upload(b"y", "text/plain", "two.txt"))

        assert session.table == [{"b": "2"}]
        assert session.messages == []
        assert session.tables.selection == set()
        assert session.file_name == "two.txt"

    def test_clear(self, make_client):
        session = Session(client=make_client('[{"a": "1"}]'))
        asyncio.run(session.upload(b"x", "text/plain", "one.txt"))
        session.clear()
        assert session.table == []
        assert session.payload is None
        assert not session.can_chat

    def test_stale_extraction_is_dropped(self, make_client):
        newer_client = make_client('[{"file": "second"}]')

        class SupersedingClient:
            session = None

            async def generate(self, request):
                # A newer upload starts and finishes while this call is in flight
                self.session.client = newer_client
                await self.session.upload(b"second", "text/plain", "second.txt")
                return AIResponse(text='[{"file": "first"}]')

        client = SupersedingClient()
        session = Session(client=client)
        client.session = session

        result = asyncio.run(session.upload(b"first", "text/plain", "first.txt"))

        assert result is None
        assert session.file_name == "second.txt"
        assert session.table == [{"file": "second"}]


class TestEdits:

    @pytest.fixture
    def session(self, make_client):
        session = Session(client=make_client('[{"n": "1"}, {"n": "2"}, {"n": "3"}]'))
        asyncio.run(session.upload(b"n\n1\n2\n3", "text/plain", "n.txt"))
        return session

    def test_edits_are_persisted(self, session):
        session.edit_cell(0, "n", "10")
        session.add_row()
        restored = Session(client=None, cache=session.cache)
        assert restored.table == [{"n": "10"}, {"n": "2"}, {"n": "3"}]

    def test_delete_selected(self, session):
        session.toggle_row_selection(1)
        assert session.delete_selected() == [{"n": "1"}, {"n": "3"}]

    def test_delete_row_keeps_selection_in_range(self, session):
        session.toggle_select_all()
        session.delete_row(2)
        assert session.tables.selection == {0, 1}


class TestChat:

    def test_answer_appended(self, make_client):
        client = make_client('[{"Name": "Ada"}]', "Ada is listed.")
        session = Session(client=client)
        asyncio.run(session.upload(b"Name\nAda", "text/plain", "p.txt"))

        reply = asyncio.run(session.send_message("Who is listed?"))

        assert [m.sender for m in session.messages] == ["user", "ai"]
        assert reply.text == "Ada is listed."
        assert '"Name": "Ada"' in client.requests[1].parts[0].text

    def test_history_excludes_new_message(self, make_client):
        client = make_client("first answer", "second answer")
        session = Session(client=client)
        asyncio.run(session.send_message("first"))
        asyncio.run(session.send_message("second"))

        prompt = client.requests[1].parts[0].text
        assert "Chat History (for context):\nUser: first\nAI: first answer\n\nUser: second\nAI:" in prompt

    def test_blank_message_ignored(self, make_client):
        session = Session(client=make_client())
        assert asyncio.run(session.send_message("   ")) is None
        assert session.messages == []

    def test_failure_appends_synthetic_message(self, make_client):
        session = Session(client=make_client(RuntimeError("quota exceeded")))

        with pytest.raises(AIRequestError):
            asyncio.run(session.send_message("hello"))

        last = session.messages[-1]
        assert last.sender == "ai"
        assert last.text == "Sorry, I encountered an error: AI chat failed: quota exceeded"
        assert session.error == "Chat AI error: AI chat failed: quota exceeded"

    def test_messages_are_immutable(self, make_client):
        session = Session(client=make_client("ok"))
        asyncio.run(session.send_message("hi"))
        with pytest.raises(Exception):
            session.messages[0].text = "edited"
