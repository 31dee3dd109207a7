"""Google Drive blob store for case attachments."""

import asyncio
import io
import json
import logging
import os

import sentry_sdk
from google.oauth2 import service_account
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive"]
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def is_drive_configured() -> bool:
    """Check if Google Drive credentials are configured."""
    # Support credentials from env var (for Railway/Heroku) or file
    if os.environ.get("GOOGLE_DRIVE_CREDENTIALS_JSON"):
        return True
    credentials_file = os.environ.get("GOOGLE_DRIVE_CREDENTIALS_FILE")
    return bool(credentials_file and os.path.exists(credentials_file))


def build_drive_service() -> Resource | None:
    """
    Create a Drive v3 API service from service account credentials.

    Supports credentials from:
    - GOOGLE_DRIVE_CREDENTIALS_JSON env var (for Railway/Heroku)
    - GOOGLE_DRIVE_CREDENTIALS_FILE path (for local dev)

    Returns None if not configured or the credentials are unusable.
    """
    if not is_drive_configured():
        return None

    try:
        credentials_json = os.environ.get("GOOGLE_DRIVE_CREDENTIALS_JSON")
        if credentials_json:
            creds = service_account.Credentials.from_service_account_info(
                json.loads(credentials_json),
                scopes=SCOPES,
            )
        else:
            creds = service_account.Credentials.from_service_account_file(
                os.environ["GOOGLE_DRIVE_CREDENTIALS_FILE"],
                scopes=SCOPES,
            )
        return build("drive", "v3", credentials=creds, cache_discovery=False)
    except Exception as e:
        print(f"Warning: Failed to initialize Google Drive service: {e}")
        return None


class GoogleDriveBlobStore:
    """
    BlobStore that writes into one Drive folder and shares each file by link.

    The googleapiclient calls are blocking and run in a worker thread.
    """

    def __init__(self, service: Resource, folder_name: str = "TrafficCaseFiles"):
        self.service = service
        self.folder_name = folder_name
        self._folder_id: str | None = None
        self._folder_lock = asyncio.Lock()

    def _find_or_create_folder(self) -> str:
        escaped = self.folder_name.replace("'", "\\'")
        response = (
            self.service.files()
            .list(
                q=(
                    f"name = '{escaped}' and mimeType = '{FOLDER_MIME_TYPE}' "
                    "and trashed = false"
                ),
                fields="files(id)",
                pageSize=1,
            )
            .execute()
        )
        files = response.get("files", [])
        if files:
            return files[0]["id"]

        folder = (
            self.service.files()
            .create(
                body={"name": self.folder_name, "mimeType": FOLDER_MIME_TYPE},
                fields="id",
            )
            .execute()
        )
        logger.info(f"Created Drive folder {self.folder_name!r}")
        return folder["id"]

    async def _get_folder_id(self) -> str:
        async with self._folder_lock:
            if self._folder_id is None:
                self._folder_id = await asyncio.to_thread(self._find_or_create_folder)
            return self._folder_id

    def _upload_sync(self, folder_id: str, data: bytes, filename: str, mime_type: str) -> str:
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        created = (
            self.service.files()
            .create(
                body={"name": filename, "parents": [folder_id]},
                media_body=media,
                fields="id, webViewLink",
            )
            .execute()
        )
        self.service.permissions().create(
            fileId=created["id"],
            body={"type": "anyone", "role": "reader"},
        ).execute()
        return created["webViewLink"]

    async def put(self, data: bytes, filename: str, mime_type: str) -> str:
        folder_id = await self._get_folder_id()
        try:
            return await asyncio.to_thread(
                self._upload_sync, folder_id, data, filename, mime_type
            )
        except HttpError as e:
            if e.resp.status == 429:
                logger.warning(f"Google Drive rate limit hit uploading {filename}")
                sentry_sdk.capture_message(
                    "Google Drive rate limit: upload", level="warning"
                )
            raise
