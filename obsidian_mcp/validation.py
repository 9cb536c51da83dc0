"""
Input validation for Obsidian MCP Gateway.

Transport hygiene (content type, body size) runs as admission stages before
dispatch; path validation and content sanitization run per tool call.
"""

from starlette.requests import Request

from .models import GateResult, RequestContext

JSON_MEDIA_TYPE = "application/json"

# Characters rejected anywhere in a path. Deny-list: & and other characters
# valid in Obsidian filenames are allowed on purpose.
DANGEROUS_PATH_CHARS = ("~", "$", "`", "|", ";")

# Tool arguments that carry vault paths
PATH_ARGUMENTS = ("path", "folder")


# ============== Exceptions ==============

class PathValidationError(Exception):
    """Raised when path validation fails."""
    pass


class ContentValidationError(Exception):
    """Raised when content validation fails."""
    pass


class BodyTooLargeError(ContentValidationError):
    """Raised when a request body exceeds the configured cap."""

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds maximum allowed size ({limit} bytes)")
        self.limit = limit


# ============== Transport Hygiene ==============

def check_content_type(ctx: RequestContext) -> GateResult | None:
    """Require POST requests to declare a JSON body."""
    if ctx.method != "POST":
        return None

    media_type = ctx.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if media_type != JSON_MEDIA_TYPE:
        return GateResult(400, "Content-Type must be application/json", "invalid_content_type")
    return None


def check_declared_size(ctx: RequestContext, limit: int) -> GateResult | None:
    """Reject a request whose Content-Length already exceeds the cap."""
    declared = ctx.headers.get("content-length")
    if declared is None:
        return None

    try:
        size = int(declared)
    except ValueError:
        return GateResult(400, "Invalid Content-Length", "invalid_content_length")

    if size > limit:
        return GateResult(413, "Request Entity Too Large", "body_too_large")
    return None


async def read_body(request: Request, limit: int) -> bytes:
    """Read a request body, stopping as soon as it exceeds limit.

    Raises:
        BodyTooLargeError: If the body is larger than limit bytes
    """
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            raise BodyTooLargeError(limit)
        chunks.append(chunk)
    return b"".join(chunks)


# ============== Path & Content Validation ==============

def validate_path(path: str) -> str:
    """Validate a vault path supplied by a client.

    Only syntactic checks are made: nothing is resolved against the
    filesystem and symlinks are not followed.

    Args:
        path: Note or folder path relative to the vault root

    Returns:
        The validated path

    Raises:
        PathValidationError: If the path is unsafe or not a markdown note/folder
    """
    if ".." in path:
        raise PathValidationError("directory traversal not allowed")

    if path.startswith("/"):
        raise PathValidationError("absolute paths not allowed")

    if "\x00" in path:
        raise PathValidationError("contains null byte")

    for char in DANGEROUS_PATH_CHARS:
        if char in path:
            raise PathValidationError(f"contains dangerous character '{char}'")

    # Paths without any "." are folder references or extensionless notes
    if not path.endswith(".md") and not path.endswith("/") and "." in path:
        raise PathValidationError("only .md files are supported")

    return path


def validate_arguments(arguments: dict) -> None:
    """Run validate_path on every string argument that names a vault path."""
    for key in PATH_ARGUMENTS:
        value = arguments.get(key)
        if isinstance(value, str):
            validate_path(value)


def sanitize_content(content: str) -> str:
    """Strip NUL bytes from note content.

    No HTML escaping: the payload is Markdown and is stored as-is.
    """
    return content.replace("\x00", "")


def normalize_note_path(path: str) -> str:
    """Append .md to a note path that has no extension."""
    if not path or "." in path or path.endswith("/"):
        return path
    return path + ".md"
