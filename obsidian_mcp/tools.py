"""
MCP Tools module for Obsidian MCP Gateway.

Contains the static tool catalogue and the per-tool execution against the vault.
"""

from enum import Enum
from typing import Any, Protocol

from mcp.types import TextContent, Tool


class ToolError(Exception):
    """Raised when a tool call cannot be executed (unknown tool, bad arguments)."""
    pass


class ToolName(str, Enum):
    GET_NOTE = "get_note"
    CREATE_NOTE = "create_note"
    UPDATE_NOTE = "update_note"
    DELETE_NOTE = "delete_note"
    LIST_NOTES = "list_notes"
    SEARCH_NOTES = "search_notes"
    GET_VAULT_INFO = "get_vault_info"


class Vault(Protocol):
    """The vault operations the tools forward to (see VaultClient)."""

    async def get_note(self, path: str) -> str: ...
    async def create_note(self, path: str, content: str) -> str: ...
    async def update_note(self, path: str, content: str) -> str: ...
    async def delete_note(self, path: str) -> str: ...
    async def list_notes(self, folder: str = "") -> str: ...
    async def search_notes(self, query: str) -> str: ...
    async def get_vault_info(self) -> str: ...


TOOLS: list[Tool] = [
    Tool(
        name=ToolName.GET_NOTE.value,
        description="Get the content of a note by its path",
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to the note (relative to vault root)"
                }
            },
            "required": ["path"]
        }
    ),
    Tool(
        name=ToolName.CREATE_NOTE.value,
        description="Create a new note with the specified content",
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path where the note should be created"
                },
                "content": {
                    "type": "string",
                    "description": "Content of the note"
                }
            },
            "required": ["path", "content"]
        }
    ),
    Tool(
        name=ToolName.UPDATE_NOTE.value,
        description="Update an existing note's content",
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to the note to update"
                },
                "content": {
                    "type": "string",
                    "description": "New content for the note"
                }
            },
            "required": ["path", "content"]
        }
    ),
    Tool(
        name=ToolName.DELETE_NOTE.value,
        description="Delete a note",
        inputSchema={
            "type": "object",
            "properties": {
                "path": {
                    "type": "string",
                    "description": "Path to the note to delete"
                }
            },
            "required": ["path"]
        }
    ),
    Tool(
        name=ToolName.LIST_NOTES.value,
        description="List all notes in the vault",
        inputSchema={
            "type": "object",
            "properties": {
                "folder": {
                    "type": "string",
                    "description": "Optional folder to filter by"
                }
            }
        }
    ),
    Tool(
        name=ToolName.SEARCH_NOTES.value,
        description="Search for notes containing specific text",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "Search query"
                }
            },
            "required": ["query"]
        }
    ),
    Tool(
        name=ToolName.GET_VAULT_INFO.value,
        description="Get information about the vault",
        inputSchema={
            "type": "object",
            "properties": {}
        }
    ),
]


def list_tools() -> list[dict[str, Any]]:
    """Return the tool catalogue as JSON-ready dicts."""
    return [tool.model_dump(by_alias=True, exclude_none=True) for tool in TOOLS]


def text_result(text: str) -> dict[str, Any]:
    """Wrap a tool's text output in the tools/call result shape."""
    return {"content": [TextContent(type="text", text=text).model_dump(by_alias=True, exclude_none=True)]}


def _require_str(arguments: dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or (key == "path" and not value):
        raise ToolError(f"missing or invalid {key} parameter")
    return value


async def execute_tool(vault: Vault, name: str, arguments: dict[str, Any]) -> str:
    """Check a tool's required arguments and forward the call to the vault.

    Raises:
        ToolError: If the tool is unknown or a required argument is missing
        VaultError: If the vault call fails
    """
    try:
        tool = ToolName(name)
    except ValueError:
        raise ToolError(f"unknown tool: {name}") from None

    if tool is ToolName.GET_NOTE:
        return await vault.get_note(_require_str(arguments, "path"))

    elif tool is ToolName.CREATE_NOTE:
        path = _require_str(arguments, "path")
        content = _require_str(arguments, "content")
        return await vault.create_note(path, content)

    elif tool is ToolName.UPDATE_NOTE:
        path = _require_str(arguments, "path")
        content = _require_str(arguments, "content")
        return await vault.update_note(path, content)

    elif tool is ToolName.DELETE_NOTE:
        return await vault.delete_note(_require_str(arguments, "path"))

    elif tool is ToolName.LIST_NOTES:
        folder = arguments.get("folder")
        return await vault.list_notes(folder if isinstance(folder, str) else "")

    elif tool is ToolName.SEARCH_NOTES:
        return await vault.search_notes(_require_str(arguments, "query"))

    elif tool is ToolName.GET_VAULT_INFO:
        return await vault.get_vault_info()

    raise ToolError(f"unhandled tool: {name}")
