import pytest

from docdesk.core.exceptions import UploadError, ValidationAppError
from docdesk.services.envelope import Attachment
from docdesk.services.uploads import UploadItem, sanitize_filename


def _item(name: str, size: int = 8) -> UploadItem:
    return UploadItem(filename=name, content=b"x" * size, content_type="application/octet-stream")


@pytest.mark.asyncio
async def test_batch_uploads_every_file_into_scoped_folder(uploader, blob_store):
    attachments = await uploader.upload_batch([_item("log.txt"), _item("screen.png")], scope="ticket-1")

    assert [item.original_filename for item in attachments] == ["log.txt", "screen.png"]
    assert {item["folder"] for item in blob_store.uploads} == {"support-tickets/ticket-1"}
    assert attachments[1].resource_type == "image"
    assert attachments[1].format == "png"


@pytest.mark.asyncio
async def test_empty_batch_uploads_nothing(uploader, blob_store):
    assert await uploader.upload_batch([]) == []
    assert blob_store.uploads == []


@pytest.mark.asyncio
async def test_second_of_three_failing_returns_no_attachments(uploader, blob_store):
    blob_store.fail_on = {"second.txt"}

    with pytest.raises(UploadError) as exc_info:
        await uploader.upload_batch([_item("first.txt"), _item("second.txt"), _item("third.txt")], scope="t")

    assert exc_info.value.filename == "second.txt"
    assert exc_info.value.status_code == 500
    uploaded_ids = sorted(item["public_id"] for item in blob_store.uploads)
    assert sorted(public_id for public_id, _ in blob_store.deleted) == uploaded_ids
    assert len(uploaded_ids) == 2


@pytest.mark.asyncio
async def test_empty_file_is_a_validation_error(uploader, blob_store):
    with pytest.raises(ValidationAppError):
        await uploader.upload_batch([_item("empty.txt", size=0)])
    assert blob_store.uploads == []


@pytest.mark.asyncio
async def test_batch_limits_are_enforced(uploader):
    with pytest.raises(ValidationAppError):
        await uploader.upload_batch([_item(f"f{index}.txt") for index in range(4)])
    with pytest.raises(ValidationAppError):
        await uploader.upload_batch([_item("big.bin", size=2048)])


@pytest.mark.asyncio
async def test_rollback_is_best_effort(uploader, blob_store):
    attachments = [
        Attachment(url="u1", public_id="p1", original_filename="a", bytes=1, resource_type="image"),
        Attachment(url="u2", public_id="p2", original_filename="b", bytes=1, resource_type="raw"),
    ]
    blob_store.fail_delete = {"p1"}

    await uploader.rollback(attachments)

    assert blob_store.deleted == [("p2", "raw")]


def test_folder_defaults_to_base_without_scope(uploader):
    assert uploader.folder_for(None) == "support-tickets"
    assert uploader.folder_for("/abc/") == "support-tickets/abc"


def test_sanitize_filename_strips_paths_and_odd_characters():
    assert sanitize_filename("C:\\Users\\me\\report (1).pdf") == "report _1_.pdf"
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("") == "attachment"
