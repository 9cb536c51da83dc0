"""
Vault client for Obsidian MCP Gateway.

Talks to the Obsidian Local REST API plugin and formats every answer as
human-readable Markdown text. Failed calls are not retried.
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog

from .validation import normalize_note_path

logger = structlog.get_logger(__name__)


class VaultError(Exception):
    """Raised when the vault backend fails or answers with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _status_text(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}".strip()


def _vault_endpoint(path: str) -> str:
    return "/vault/" + quote(path, safe="/")


def _note_paths(files: Any) -> list[str]:
    """Extract .md paths from a /vault/ listing.

    The plugin returns either plain strings or {"path": ...} objects.
    """
    notes = []
    if not isinstance(files, dict):
        return notes

    for entry in files.get("files") or []:
        if isinstance(entry, str):
            path = entry
        elif isinstance(entry, dict) and isinstance(entry.get("path"), str):
            path = entry["path"]
        else:
            continue
        if path.endswith(".md"):
            notes.append(path)
    return notes


class VaultClient:
    """Async client for the vault REST API."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "VaultClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("vault_request_failed", method=method, endpoint=endpoint, error=str(e))
            raise VaultError(f"request failed: {e}") from e

    @staticmethod
    def _expect(response: httpx.Response, action: str, *accepted: int) -> None:
        if response.status_code not in accepted:
            raise VaultError(f"failed to {action}: {_status_text(response)}", response.status_code)

    async def get_note(self, path: str) -> str:
        """Fetch a note's Markdown body."""
        path = normalize_note_path(path)
        response = await self._request("GET", _vault_endpoint(path))
        self._expect(response, "get note", 200)

        return f"# Note: {path}\n\n{response.text}"

    async def create_note(self, path: str, content: str) -> str:
        path = normalize_note_path(path)
        response = await self._request(
            "PUT",
            _vault_endpoint(path),
            content=content.encode("utf-8"),
            headers={"Content-Type": "text/markdown"},
        )
        self._expect(response, "create note", 200, 201, 204)

        return f"Successfully created note: {path}"

    async def update_note(self, path: str, content: str) -> str:
        path = normalize_note_path(path)
        response = await self._request(
            "PUT",
            _vault_endpoint(path),
            content=content.encode("utf-8"),
            headers={"Content-Type": "text/markdown"},
        )
        self._expect(response, "update note", 200, 204)

        return f"Successfully updated note: {path}"

    async def delete_note(self, path: str) -> str:
        path = normalize_note_path(path)
        response = await self._request("DELETE", _vault_endpoint(path))
        self._expect(response, "delete note", 200, 204)

        return f"Successfully deleted note: {path}"

    async def list_notes(self, folder: str = "") -> str:
        """List notes in the vault, or in one folder.

        A missing folder is reported as empty rather than as an error.
        """
        endpoint = "/vault/"
        if folder:
            endpoint = _vault_endpoint(folder.rstrip("/")) + "/"

        response = await self._request("GET", endpoint)

        if response.status_code == 404:
            if folder:
                return f"Folder '{folder}' is empty or does not exist yet. No notes found."
            return "No notes found in vault."

        self._expect(response, "list notes", 200)

        try:
            notes = _note_paths(response.json())
        except ValueError as e:
            raise VaultError(f"failed to decode response: {e}") from e

        if not notes:
            return "No notes found."

        output = f"Found {len(notes)} notes:\n"
        for note in notes:
            output += f"- {note}\n"
        return output

    async def search_notes(self, query: str) -> str:
        """Run a simple full-text search."""
        response = await self._request(
            "POST",
            "/search/simple/",
            params={"query": query, "contextLength": 100},
        )

        if response.status_code != 200:
            raise VaultError(
                f"failed to search notes: {_status_text(response)} - {response.text}",
                response.status_code,
            )

        try:
            results = response.json()
        except ValueError as e:
            raise VaultError(f"failed to decode response: {e}") from e
        if not isinstance(results, list):
            raise VaultError("failed to decode response: expected a list of results")

        if not results:
            return f'No notes found matching "{query}".'

        output = f'Found {len(results)} notes matching "{query}":\n\n'
        for i, item in enumerate(results, start=1):
            filename = item.get("filename") if isinstance(item, dict) else None
            if not isinstance(filename, str):
                continue

            output += f"{i}. **{filename}**\n"
            for match in item.get("matches") or []:
                if isinstance(match, dict) and isinstance(match.get("context"), str):
                    output += f"   > {match['context'].strip()}\n"
            output += "\n"

        return output

    async def get_vault_info(self) -> str:
        """Describe the vault service, with note and folder counts when available."""
        response = await self._request("GET", "/")
        self._expect(response, "get vault info", 200)

        try:
            info = response.json()
        except ValueError as e:
            raise VaultError(f"failed to decode response: {e}") from e
        if not isinstance(info, dict):
            info = {}

        output = "# Vault Information\n\n"

        if isinstance(info.get("authenticated"), bool):
            output += f"**Authenticated:** {str(info['authenticated']).lower()}\n"

        if isinstance(info.get("service"), str):
            output += f"**Service:** {info['service']}\n"

        if isinstance(info.get("versions"), dict):
            output += "\n## Versions\n"
            for key, value in info["versions"].items():
                output += f"- **{key}:** {value}\n"

        output += await self._vault_statistics()
        return output

    async def _vault_statistics(self) -> str:
        # Statistics are optional: any failure just leaves the section out
        try:
            response = await self._client.get("/vault/")
            if response.status_code != 200:
                return ""
            files = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.info("vault_statistics_unavailable", error=str(e))
            return ""

        if not isinstance(files, dict) or not isinstance(files.get("files"), list):
            return ""

        note_count = 0
        folder_count = 0
        for entry in files["files"]:
            if isinstance(entry, str):
                if entry.endswith(".md"):
                    note_count += 1
                elif entry.endswith("/"):
                    folder_count += 1
            elif isinstance(entry, dict):
                if str(entry.get("path", "")).endswith(".md"):
                    note_count += 1
                if entry.get("is_folder") is True:
                    folder_count += 1

        return f"\n## Statistics\n- **Notes:** {note_count}\n- **Folders:** {folder_count}\n"
