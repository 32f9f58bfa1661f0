import asyncio
import json

import httpx
import pytest

from docdesk.client.api import SupportApiClient, TicketClientError
from docdesk.client.render import render_messages
from docdesk.client.sync import ConversationSync
from docdesk.core.config import get_settings


def _message(message_id: str, text: str, sender: str = "user", kind: str | None = None) -> dict:
    return {
        "id": message_id,
        "sender": sender,
        "sender_kind": kind or sender,
        "sender_info": None,
        "content": json.dumps({"text": text, "attachments": []}),
        "timestamp": "2026-01-05T12:00:00+00:00",
    }


def _snapshot(updated_at: str, messages: list[dict], status: str = "open") -> dict:
    return {"id": "t-1", "status": status, "updated_at": updated_at, "messages": messages}


class FakeClient:
    def __init__(self, snapshots=None) -> None:
        self.snapshots = list(snapshots or [])
        self.poll_errors: list[Exception] = []
        self.post_error: Exception | None = None
        self.posted: list[tuple[str, str, list]] = []
        self.polls = 0

    async def get_ticket(self, ticket_id: str) -> dict:
        self.polls += 1
        if self.poll_errors:
            raise self.poll_errors.pop(0)
        if len(self.snapshots) > 1:
            return self.snapshots.pop(0)
        return self.snapshots[0]

    async def post_message(self, ticket_id, content, files=()):
        if self.post_error is not None:
            raise self.post_error
        self.posted.append((ticket_id, content, list(files)))
        return self.snapshots[-1]


def test_poll_result_replaces_history_but_keeps_draft():
    initial = _snapshot("t0", [_message("m1", "hello")])
    sync = ConversationSync(FakeClient(), "t-1", initial)
    sync.draft.text = "draft in progress"

    changed = sync.apply_snapshot(_snapshot("t1", [_message("m1", "hello"), _message("m2", "reply", "admin")]))

    assert changed
    assert sync.draft.text == "draft in progress"
    assert [item.id for item in sync.messages] == ["m1", "m2"]


def test_same_updated_at_is_ignored():
    seen = []
    initial = _snapshot("t0", [_message("m1", "hello")])
    sync = ConversationSync(FakeClient(), "t-1", initial, on_snapshot=seen.append)

    assert not sync.apply_snapshot(_snapshot("t0", [_message("m1", "changed locally?")]))
    assert seen == []
    assert sync.messages[0].text == "hello"


def test_header_only_change_does_not_trigger_scroll():
    scrolls = []
    snapshots = []
    initial = _snapshot("t0", [_message("m1", "hello")])
    sync = ConversationSync(
        FakeClient(),
        "t-1",
        initial,
        on_snapshot=snapshots.append,
        on_messages_changed=scrolls.append,
    )

    sync.apply_snapshot(_snapshot("t1", [_message("m1", "hello")], status="in-progress"))
    assert len(snapshots) == 1
    assert scrolls == []

    sync.apply_snapshot(_snapshot("t2", [_message("m1", "hello"), _message("m2", "new", "admin")]))
    assert len(scrolls) == 1
    assert [item.id for item in scrolls[0]] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_failed_poll_is_ignored_and_auth_loss_is_reported():
    lost = []
    initial = _snapshot("t0", [_message("m1", "hello")])
    client = FakeClient([_snapshot("t1", [_message("m1", "hello"), _message("m2", "x", "admin")])])
    client.poll_errors = [TicketClientError("down", status_code=503), TicketClientError("expired", status_code=401)]
    sync = ConversationSync(client, "t-1", initial, on_auth_lost=lost.append)

    assert await sync.poll_once() is False
    assert await sync.poll_once() is False
    assert [error.status_code for error in lost] == [401]
    assert await sync.poll_once() is True
    assert len(sync.messages) == 2


@pytest.mark.asyncio
async def test_failed_send_keeps_draft():
    initial = _snapshot("t0", [_message("m1", "hello")])
    client = FakeClient([initial])
    client.post_error = TicketClientError("Failed to upload attachment a.png", status_code=500)
    sync = ConversationSync(client, "t-1", initial)
    sync.draft.text = "my answer"
    sync.draft.files = [("a.png", b"png", "image/png")]

    with pytest.raises(TicketClientError):
        await sync.send()

    assert sync.draft.text == "my answer"
    assert len(sync.draft.files) == 1


@pytest.mark.asyncio
async def test_successful_send_applies_response_and_clears_draft():
    initial = _snapshot("t0", [_message("m1", "hello")])
    after_send = _snapshot("t1", [_message("m1", "hello"), _message("m2", "my answer")])
    client = FakeClient([after_send])
    sync = ConversationSync(client, "t-1", initial)
    sync.draft.text = "  my answer  "

    await sync.send()

    assert client.posted == [("t-1", "my answer", [])]
    assert sync.draft.text == ""
    assert [item.text for item in sync.messages] == ["hello", "my answer"]


@pytest.mark.asyncio
async def test_empty_draft_is_not_sent():
    sync = ConversationSync(FakeClient(), "t-1", _snapshot("t0", []))
    with pytest.raises(ValueError):
        await sync.send()


@pytest.mark.asyncio
async def test_polling_runs_until_ticket_closes():
    initial = _snapshot("t0", [_message("m1", "hello")])
    client = FakeClient(
        [
            _snapshot("t1", [_message("m1", "hello"), _message("m2", "x", "admin")], status="in-progress"),
            _snapshot("t2", [_message("m1", "hello"), _message("m2", "x", "admin")], status="closed"),
        ]
    )

    async with ConversationSync(client, "t-1", initial, poll_interval=0.01) as sync:
        for _ in range(100):
            if sync.is_closed:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)

        assert sync.is_closed
        assert not sync.is_polling
        polls_at_close = client.polls
        await asyncio.sleep(0.05)
        assert client.polls == polls_at_close


@pytest.mark.asyncio
async def test_exiting_the_view_cancels_polling():
    client = FakeClient([_snapshot("t0", [])])
    sync = ConversationSync(client, "t-1", _snapshot("t0", []), poll_interval=0.01)

    async with sync:
        assert sync.is_polling
        await asyncio.sleep(0.03)

    assert not sync.is_polling
    polls = client.polls
    await asyncio.sleep(0.05)
    assert client.polls == polls


@pytest.mark.asyncio
async def test_closed_ticket_never_starts_polling():
    async with ConversationSync(FakeClient(), "t-1", _snapshot("t0", [], status="closed")) as sync:
        assert not sync.is_polling

@pytest.mark.asyncio
async def test_poll_that_resolves_after_send_does_not_hide_the_reply():
    initial = _snapshot("2026-01-05T12:00:00+00:00", [_message("m1", "hello")])
    after_send = _snapshot("2026-01-05T12:02:00+00:00", [_message("m1", "hello"), _message("m2", "my answer")])
    stale_poll = _snapshot("2026-01-05T12:01:00+00:00", [_message("m1", "hello")], status="in-progress")
    client = FakeClient([after_send])
    sync = ConversationSync(client, "t-1", initial)
    sync.draft.text = "my answer"

    await sync.send()
    assert sync.apply_snapshot(stale_poll) is False

    assert [item.id for item in sync.messages] == ["m1", "m2"]
    assert sync.ticket["status"] == "open"


def test_newer_snapshot_with_different_offset_is_applied():
    sync = ConversationSync(FakeClient(), "t-1", _snapshot("2026-01-05T12:00:00Z", []))

    assert sync.apply_snapshot(_snapshot("2026-01-05T14:30:00+02:00", [_message("m1", "hi")]))
    assert sync.ticket["updated_at"] == "2026-01-05T14:30:00+02:00"


@pytest.mark.asyncio
async def test_closed_ticket_refuses_replies():
    client = FakeClient()
    sync = ConversationSync(client, "t-1", _snapshot("t0", [_message("m1", "hello")], status="closed"))
    sync.draft.text = "one more thing"

    assert not sync.can_reply
    with pytest.raises(ValueError, match="closed"):
        await sync.send()

    assert client.posted == []
    assert sync.draft.text == "one more thing"


def test_poll_interval_defaults_to_configured_value():
    sync = ConversationSync(FakeClient(), "t-1", _snapshot("t0", []))
    assert sync.poll_interval == get_settings().poll_interval_sec

    assert ConversationSync(FakeClient(), "t-1", _snapshot("t0", []), poll_interval=2.5).poll_interval == 2.5



def test_render_decodes_legacy_and_envelope_messages():
    ticket = {
        "messages": [
            {"id": "m1", "sender": "Ann", "sender_kind": "anonymous", "content": "plain legacy text", "timestamp": "2026-01-05T12:00:00Z"},
            {
                "id": "m2",
                "sender": "admin",
                "sender_kind": "admin",
                "content": json.dumps(
                    {
                        "text": "",
                        "attachments": [
                            {"url": "u", "public_id": "p", "original_filename": "s.png", "bytes": 3, "resource_type": "image"}
                        ],
                    }
                ),
                "timestamp": "2026-01-05T12:01:00+00:00",
            },
        ]
    }

    first, second = render_messages(ticket)
    assert first.sender == "Ann"
    assert first.text == "plain legacy text"
    assert first.attachments == []
    assert first.timestamp.tzinfo is not None
    assert second.is_staff
    assert second.sender == "Support Team"
    assert [item.original_filename for item in second.images] == ["s.png"]


@pytest.mark.asyncio
async def test_api_client_unwraps_envelope_and_raises_on_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer tok"
        if request.url.path == "/api/v1/tickets/ok":
            return httpx.Response(200, json={"data": {"id": "ok"}, "meta": {}, "error": None})
        return httpx.Response(
            403,
            json={"data": None, "meta": {}, "error": {"code": "forbidden", "message": "Token email does not match ticket owner"}},
        )

    async with SupportApiClient("http://api.test", "tok", transport=httpx.MockTransport(handler)) as client:
        assert await client.get_ticket("ok") == {"id": "ok"}
        with pytest.raises(TicketClientError) as exc_info:
            await client.get_ticket("other")

    assert exc_info.value.status_code == 403
    assert exc_info.value.code == "forbidden"
    assert exc_info.value.auth_failed


@pytest.mark.asyncio
async def test_api_client_staff_calls():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, dict(request.url.params), request.content))
        if request.url.path == "/api/v1/tickets/verify":
            return httpx.Response(200, json={"data": {"ticket_id": "t-1", "email": "a@b.com"}, "meta": {}, "error": None})
        if request.url.path == "/api/v1/admin/tickets":
            return httpx.Response(200, json={"data": [{"id": "t-1"}], "meta": {"pagination": {"total": 1}}, "error": None})
        return httpx.Response(200, json={"data": {"id": "t-1", "status": "closed"}, "meta": {}, "error": None})

    async with SupportApiClient("http://api.test", "staff", transport=httpx.MockTransport(handler)) as client:
        assert await client.verify_token("link-token") == {"ticket_id": "t-1", "email": "a@b.com"}
        assert await client.list_tickets(q="login", status="open", limit=20) == [{"id": "t-1"}]
        assert (await client.update_status("t-1", "closed"))["status"] == "closed"

    verify, listing, update = seen
    assert verify[0] == "POST"
    assert json.loads(verify[3]) == {"token": "link-token"}
    assert listing[2] == {"limit": "20", "offset": "0", "q": "login", "status": "open"}
    assert update[:2] == ("PATCH", "/api/v1/admin/tickets/t-1/status")
    assert json.loads(update[3]) == {"status": "closed"}
