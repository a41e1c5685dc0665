from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from cloud_transfer_engine.domain.errors import ProviderError, TransferValidationError
from cloud_transfer_engine.domain.providers import TransferProgress
from cloud_transfer_engine.infrastructure.providers import (
    DriveProviderCapability,
    export_mime_type,
)

API = "https://drive.test/drive/v3"
UPLOAD = "https://drive.test/upload/drive/v3"

FILES = {
    "file-1": {"id": "file-1", "name": "report.pdf", "size": "6", "mimeType": "application/pdf"},
    "doc-1": {
        "id": "doc-1",
        "name": "Plan",
        "mimeType": "application/vnd.google-apps.document",
    },
    "folder-1": {
        "id": "folder-1",
        "name": "Archive",
        "mimeType": "application/vnd.google-apps.folder",
    },
}


class FakeDriveApi:
    """Request handler emulating the Drive endpoints used by the capability."""

    def __init__(self, *, about_status: int = 200) -> None:
        self.about_status = about_status
        self.requests: list[httpx.Request] = []
        self.uploaded: bytes = b""

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.endswith("/about"):
            if self.about_status != 200:
                return httpx.Response(
                    self.about_status,
                    json={"error": {"message": "denied"}},
                )
            return httpx.Response(
                200,
                json={"user": {"emailAddress": "owner@example.com"}, "storageQuota": {}},
            )
        if path == "/upload/drive/v3/files":
            self.uploaded = request.content
            return httpx.Response(200, json={"id": "new-file", "size": "6"})
        if path.endswith("/export"):
            return httpx.Response(200, content=b"docx-bytes")

        file_id = path.rsplit("/", 1)[-1]
        metadata = FILES.get(file_id)
        if metadata is None:
            return httpx.Response(404, json={"error": {"message": "File not found"}})
        if request.url.params.get("alt") == "media":
            return httpx.Response(200, content=b"%PDF-1")
        return httpx.Response(200, json=metadata)


def capability(api: FakeDriveApi, **credentials: str) -> DriveProviderCapability:
    return DriveProviderCapability(
        {"accessToken": "token-1", **credentials},
        api_base_url=API,
        upload_base_url=UPLOAD,
        transport=httpx.MockTransport(api),
    )


def test_access_token_is_required() -> None:
    with pytest.raises(TransferValidationError):
        DriveProviderCapability({"folderId": "abc"})


def test_authenticate_uses_bearer_token() -> None:
    async def scenario() -> None:
        api = FakeDriveApi()

        result = await capability(api).authenticate()

        assert result.ok
        assert result.meta["user"] == "owner@example.com"
        assert api.requests[0].headers["Authorization"] == "Bearer token-1"

    asyncio.run(scenario())


def test_authenticate_maps_rejections_to_messages() -> None:
    async def scenario() -> tuple[str, str]:
        unauthorized = await capability(FakeDriveApi(about_status=401)).authenticate()
        forbidden = await capability(FakeDriveApi(about_status=403)).authenticate()
        return unauthorized.meta["error"], forbidden.meta["error"]

    assert asyncio.run(scenario()) == (
        "Invalid Google Drive credentials",
        "Account does not have access to Google Drive API",
    )


def test_get_file_info_and_missing_file() -> None:
    async def scenario() -> None:
        provider = capability(FakeDriveApi())

        info = await provider.get_file_info("file-1")
        assert (info.name, info.size, info.content_type) == ("report.pdf", 6, "application/pdf")

        with pytest.raises(ProviderError, match="File with ID 'nope' not found"):
            await provider.get_file_info("nope")

    asyncio.run(scenario())


def test_download_streams_media_with_progress() -> None:
    async def scenario() -> None:
        updates: list[TransferProgress] = []

        async def on_progress(progress: TransferProgress) -> None:
            updates.append(progress)

        result = await capability(FakeDriveApi()).download_file("file-1", on_progress=on_progress)
        data = b"".join([chunk async for chunk in result.stream])

        assert data == b"%PDF-1"
        assert result.file_info.size == 6
        assert updates[-1].loaded == 6
        assert updates[-1].percentage == 100

    asyncio.run(scenario())


class InterruptedMediaApi(FakeDriveApi):
    """Drive API whose media requests are interrupted by task cancellation."""

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("alt") == "media":
            self.requests.append(request)
            raise asyncio.CancelledError()
        return super().__call__(request)


def test_download_closes_client_when_cancelled_mid_request(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def scenario() -> None:
        drive = capability(InterruptedMediaApi())
        clients: list[httpx.AsyncClient] = []
        build_client = drive._client

        def tracking_client() -> httpx.AsyncClient:
            client = build_client()
            clients.append(client)
            return client

        monkeypatch.setattr(drive, "_client", tracking_client)

        with pytest.raises(asyncio.CancelledError):
            await drive.download_file("file-1")

        assert clients
        assert clients[-1].is_closed

    asyncio.run(scenario())


def test_workspace_documents_are_exported() -> None:
    async def scenario() -> None:
        api = FakeDriveApi()

        result = await capability(api).download_file("doc-1")
        data = b"".join([chunk async for chunk in result.stream])

        assert data == b"docx-bytes"
        assert result.file_info.content_type == export_mime_type(
            "application/vnd.google-apps.document"
        )
        assert result.file_info.size == len(data)
        assert api.requests[-1].url.params["mimeType"] == result.file_info.content_type

    asyncio.run(scenario())


def test_folders_cannot_be_downloaded() -> None:
    async def scenario() -> None:
        with pytest.raises(ProviderError, match="is a folder"):
            await capability(FakeDriveApi()).download_file("folder-1")

    asyncio.run(scenario())


def test_upload_sends_multipart_body_into_configured_folder() -> None:
    async def scenario() -> None:
        api = FakeDriveApi()
        updates: list[int] = []

        async def on_progress(progress: TransferProgress) -> None:
            updates.append(progress.loaded)

        result = await capability(api, folderId="folder-9").upload_file(
            b"hello!",
            "backups/2024/report.txt",
            content_type="text/plain",
            on_progress=on_progress,
        )

        upload = api.requests[-1]
        assert upload.url.params["uploadType"] == "multipart"
        assert upload.headers["Content-Type"].startswith("multipart/related; boundary=")
        metadata_part = api.uploaded.split(b"\r\n\r\n", 2)[1].split(b"\r\n", 1)[0]
        assert json.loads(metadata_part) == {"name": "report.txt", "parents": ["folder-9"]}
        assert b"Content-Type: text/plain\r\n\r\nhello!\r\n" in api.uploaded
        assert result.location == "new-file"
        assert updates == [6]

    asyncio.run(scenario())


def test_export_mime_type_defaults_to_pdf() -> None:
    assert export_mime_type("application/vnd.google-apps.drawing") == "image/png"
    assert export_mime_type("application/vnd.google-apps.form") == "application/pdf"
