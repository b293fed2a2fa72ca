import asyncio
import io

import pytest
from starlette.datastructures import Headers, UploadFile

from backend.app.services.cv_upload import check_file_type, check_size, receive_upload
from backend.app.utils.error_handlers import UploadLimitError, UploadRejectedError

PDF = "application/pdf"


def _upload(data: bytes, filename: str = "resume.pdf", content_type: str = PDF) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.parametrize(
    "mime, name",
    [
        (PDF, "resume.PDF"),
        ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "cv.docx"),
    ],
)
def test_check_file_type_accepts(upload_policy, mime, name):
    check_file_type(mime, name, upload_policy)


@pytest.mark.parametrize(
    "mime, name",
    [
        ("application/x-msdownload", "resume.pdf"),
        (PDF, "resume.exe"),
        (None, "resume.pdf"),
        ("application/msword", "resume.doc"),
    ],
)
def test_check_file_type_rejects(upload_policy, mime, name):
    with pytest.raises(UploadRejectedError) as exc:
        check_file_type(mime, name, upload_policy)
    assert exc.value.status_code == 400
    assert exc.value.message == "Invalid file type. Only .docx, .pdf files are allowed."


def test_check_size(upload_policy):
    check_size(upload_policy.max_bytes, upload_policy)
    with pytest.raises(UploadLimitError) as exc:
        check_size(upload_policy.max_bytes + 1, upload_policy)
    assert exc.value.message == "File too large. Maximum size is 10MB."


def test_receive_upload_writes_temp_file(upload_policy):
    incoming = asyncio.run(receive_upload(_upload(b"%PDF-1.4 body", "../../etc/My CV.pdf"), upload_policy))

    assert incoming.original_name == "My CV.pdf"
    assert incoming.size_bytes == len(b"%PDF-1.4 body")
    assert incoming.mime_type == PDF
    assert incoming.temp_path.parent == upload_policy.temp_root
    assert incoming.temp_path.name.startswith("temp_")
    assert incoming.temp_path.name.endswith("_My_CV.pdf")
    assert incoming.temp_path.read_bytes() == b"%PDF-1.4 body"


def test_receive_upload_oversize_stream_leaves_nothing(upload_policy, stored_files):
    # size is unknown up front, so the limit trips while streaming
    data = b"a" * (upload_policy.max_bytes + 1)
    with pytest.raises(UploadLimitError):
        asyncio.run(receive_upload(_upload(data), upload_policy))
    assert stored_files() == ([], [])


def test_receive_upload_rejected_type_writes_nothing(upload_policy, stored_files):
    with pytest.raises(UploadRejectedError):
        asyncio.run(receive_upload(_upload(b"MZ", "tool.exe", "application/x-msdownload"), upload_policy))
    assert stored_files() == ([], [])


def test_same_name_same_millisecond_gets_distinct_temp_files(upload_policy, monkeypatch):
    from backend.app.services import cv_upload

    monkeypatch.setattr(cv_upload, "now_ms", lambda: 1000)

    first = asyncio.run(receive_upload(_upload(b"one"), upload_policy))
    second = asyncio.run(receive_upload(_upload(b"two"), upload_policy))

    assert first.temp_path != second.temp_path
    assert first.temp_path.read_bytes() == b"one"
    assert second.temp_path.read_bytes() == b"two"
