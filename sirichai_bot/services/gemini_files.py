"""
Gemini File Manager

Uploads text content to the Gemini File API and memoizes the returned
file reference in a JSON document on disk. A cached reference is reused
only while it is younger than max_age AND the content hash still matches.
"""

import hashlib
import json
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
# Gemini deletes uploaded files after 48 hours; re-upload at 46
DEFAULT_MAX_AGE = 165600
REQUEST_TIMEOUT = 60.0


class GeminiFileError(Exception):
    """Raised when the File API rejects or fails a request"""


@dataclass
class FileReference:
    """A file stored in the Gemini File API"""
    uri: str
    name: str
    display_name: str
    cached: bool = False


def content_hash(content: str) -> str:
    return hashlib.md5(content.encode("utf-8")).hexdigest()[:8]


class GeminiFileManager:
    """Uploads and tracks files in the Gemini File API"""

    def __init__(
        self,
        api_key: str,
        cache_file: str = "./cache/gemini-files.json",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: str = GEMINI_BASE_URL,
    ):
        self.api_key = api_key
        self.cache_file = cache_file
        self.base_url = base_url
        self._transport = transport
        self.cache: Dict[str, Dict[str, Any]] = self._load_cache()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)

    def _load_cache(self) -> Dict[str, Dict[str, Any]]:
        if not os.path.exists(self.cache_file):
            return {}
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable file cache {self.cache_file}: {str(e)}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save_cache(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.cache_file) or ".", exist_ok=True)
            with open(self.cache_file, "w", encoding="utf-8") as f:
                json.dump(self.cache, f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.warning(f"Could not write file cache {self.cache_file}: {str(e)}")

    def _file_url(self, name: str) -> str:
        if not name.startswith("files/"):
            name = f"files/{name}"
        return f"{self.base_url}/v1beta/{name}"

    async def get_or_upload(
        self,
        key: str,
        content: str,
        display_name: str,
        max_age: int = DEFAULT_MAX_AGE,
    ) -> FileReference:
        """
        Return the cached file for key, uploading when stale or changed.

        Args:
            key: Cache key (e.g. "catalog")
            content: Text content to upload
            display_name: Display name shown in the File API
            max_age: Seconds a cached upload stays valid

        Returns:
            FileReference for the uploaded content

        Raises:
            GeminiFileError: if an upload was needed and failed
        """
        current_hash = content_hash(content)
        entry = self.cache.get(key)
        if entry:
            age = time.time() - entry.get("uploadedAt", 0)
            if age < max_age and entry.get("contentHash") == current_hash:
                logger.info(f"Using cached file {entry['name']} for {key} (age {int(age)}s)")
                return FileReference(
                    uri=entry["fileUri"],
                    name=entry["name"],
                    display_name=entry.get("displayName", display_name),
                    cached=True,
                )
            logger.info(f"Cached file for {key} is stale or changed, re-uploading")

        reference = await self.upload_text(content, display_name)
        self.cache[key] = {
            "fileUri": reference.uri,
            "name": reference.name,
            "displayName": display_name,
            "uploadedAt": int(time.time()),
            "contentHash": current_hash,
            "contentSize": len(content.encode("utf-8")),
        }
        self._save_cache()
        return reference

    async def upload_text(self, content: str, display_name: str) -> FileReference:
        """Upload text content as a multipart/related request"""
        boundary = uuid.uuid4().hex
        metadata = json.dumps({"file": {"display_name": display_name}})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            "Content-Type: text/plain\r\n\r\n"
            f"{content}\r\n"
            f"--{boundary}--\r\n"
        ).encode("utf-8")

        url = f"{self.base_url}/upload/v1beta/files"
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    content=body,
                    headers={
                        "Content-Type": f"multipart/related; boundary={boundary}",
                        "X-Goog-Upload-Protocol": "multipart",
                    },
                )
        except httpx.HTTPError as e:
            raise GeminiFileError(f"Upload failed: {str(e)}") from e

        if response.status_code != 200:
            raise GeminiFileError(f"Upload failed: HTTP {response.status_code} - {response.text[:200]}")

        try:
            file_info = response.json()["file"]
            reference = FileReference(
                uri=file_info["uri"], name=file_info["name"], display_name=display_name
            )
        except (ValueError, KeyError, TypeError) as e:
            raise GeminiFileError("Upload response missing file uri or name") from e

        logger.info(f"Uploaded {display_name} as {reference.name}")
        return reference

    async def get_file_info(self, name: str) -> Optional[Dict[str, Any]]:
        try:
            async with self._client() as client:
                response = await client.get(self._file_url(name), params={"key": self.api_key})
        except httpx.HTTPError as e:
            logger.error(f"Could not fetch file info for {name}: {str(e)}")
            return None
        if response.status_code != 200:
            return None
        return response.json()

    async def delete_file(self, name: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.delete(self._file_url(name), params={"key": self.api_key})
        except httpx.HTTPError as e:
            logger.error(f"Could not delete {name}: {str(e)}")
            return False
        if response.status_code in (200, 204):
            logger.info(f"Deleted file {name}")
            return True
        logger.error(f"Delete {name} returned HTTP {response.status_code}")
        return False

    async def list_files(self) -> List[Dict[str, Any]]:
        """
        List every file stored under the API key.

        Raises:
            GeminiFileError: if the listing request fails
        """
        files: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"key": self.api_key, "pageSize": 100}
        async with self._client() as client:
            while True:
                try:
                    response = await client.get(f"{self.base_url}/v1beta/files", params=params)
                except httpx.HTTPError as e:
                    raise GeminiFileError(f"List files failed: {str(e)}") from e
                if response.status_code != 200:
                    raise GeminiFileError(f"List files failed: HTTP {response.status_code}")
                data = response.json()
                files.extend(data.get("files", []))
                token = data.get("nextPageToken")
                if not token:
                    return files
                params["pageToken"] = token

    async def delete_all_files(self) -> Dict[str, Any]:
        """Delete every stored file; clears the local cache if any were deleted"""
        result: Dict[str, Any] = {"deleted": 0, "failed": 0, "errors": []}
        for file_info in await self.list_files():
            name = file_info.get("name", "")
            if await self.delete_file(name):
                result["deleted"] += 1
            else:
                result["failed"] += 1
                result["errors"].append(f"Failed to delete {name}")
        if result["deleted"]:
            self.clear_cache()
        return result

    def clear_cache(self) -> None:
        self.cache = {}
        self._save_cache()
        logger.info("File cache cleared")

    def cached_files(self) -> Dict[str, Dict[str, Any]]:
        return dict(self.cache)
