"""
Disk Tools

A session disk is a directory under the configured root, one per disk id.
The model reads and writes files there through the ``*_disk`` tools; image
generation and chat attachments are saved to the same store.

Paths are given as a directory (``file_path``, default ``/``) plus a
``filename``, always relative to the disk root.
"""

import asyncio
import fnmatch
import logging
import posixpath
import re
from pathlib import Path
from typing import Optional, Union

from ..models import ToolContext
from .registry import ToolFamily, function_schema, names_matcher

logger = logging.getLogger(__name__)

DEFAULT_DISK_ID = "default"

DISK_TOOL_NAMES = (
    "write_file_disk",
    "read_file_disk",
    "replace_string_disk",
    "list_disk",
    "download_file_disk",
    "grep_disk",
    "glob_disk",
)

_DISK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class DiskPathError(ValueError):
    """A path escapes the disk root or is otherwise unusable."""


def normalize_dir(file_path: Optional[str]) -> str:
    """Normalize a directory path to ``/a/b/`` form, rejecting ``..``."""
    raw = (file_path or "/").replace("\\", "/")
    if any(part == ".." for part in raw.split("/")):
        raise DiskPathError(f"Path must not contain '..': {file_path}")
    normalized = posixpath.normpath("/" + raw.strip("/"))
    return "/" if normalized == "/" else normalized + "/"


def _check_filename(filename: Optional[str]) -> str:
    if not filename or not str(filename).strip():
        raise DiskPathError("filename is required")
    filename = str(filename).strip()
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise DiskPathError(f"Invalid filename: {filename}")
    return filename


class LocalDiskStore:
    """Filesystem-backed session disks."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def disk_dir(self, disk_id: Optional[str]) -> Path:
        disk_id = disk_id or DEFAULT_DISK_ID
        if not _DISK_ID_PATTERN.match(disk_id) or disk_id in (".", ".."):
            raise DiskPathError(f"Invalid disk id: {disk_id}")
        return self.root / disk_id

    def resolve(self, disk_id: Optional[str], file_path: Optional[str], filename: Optional[str] = None) -> Path:
        """Absolute local path for a disk directory or file."""
        base = self.disk_dir(disk_id)
        target = base / normalize_dir(file_path).lstrip("/")
        if filename is not None:
            target = target / _check_filename(filename)
        resolved = target.resolve()
        if resolved != base.resolve() and base.resolve() not in resolved.parents:
            raise DiskPathError(f"Path escapes disk root: {file_path}")
        return resolved

    def _relative(self, disk_id: Optional[str], path: Path) -> str:
        return "/" + path.relative_to(self.disk_dir(disk_id).resolve()).as_posix()

    # Synchronous primitives, run in a worker thread by the async API.

    def _write(self, disk_id, file_path, filename, data: Union[str, bytes]) -> Path:
        path = self.resolve(disk_id, file_path, filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, bytes):
            path.write_bytes(data)
        else:
            path.write_text(data, encoding="utf-8")
        return path

    def _read(self, disk_id, file_path, filename) -> str:
        path = self.resolve(disk_id, file_path, filename)
        if not path.is_file():
            raise FileNotFoundError(
                f"File '{filename}' not found in '{normalize_dir(file_path)}'"
            )
        return path.read_text(encoding="utf-8", errors="replace")

    def _list(self, disk_id, file_path) -> dict:
        directory = self.resolve(disk_id, file_path)
        directories, files = [], []
        if directory.is_dir():
            for entry in sorted(directory.iterdir()):
                if entry.is_dir():
                    directories.append(entry.name + "/")
                else:
                    files.append({"filename": entry.name, "size": entry.stat().st_size})
        return {"path": normalize_dir(file_path), "directories": directories, "files": files}

    def _all_files(self, disk_id) -> list[Path]:
        base = self.disk_dir(disk_id)
        if not base.is_dir():
            return []
        return sorted(p.resolve() for p in base.rglob("*") if p.is_file())

    # Async API

    async def write(self, disk_id: Optional[str], file_path: Optional[str], filename: str,
                    data: Union[str, bytes]) -> str:
        """Write a file and return its disk-relative path."""
        path = await asyncio.to_thread(self._write, disk_id, file_path, filename, data)
        return self._relative(disk_id, path)

    async def read(self, disk_id: Optional[str], file_path: Optional[str], filename: str) -> str:
        return await asyncio.to_thread(self._read, disk_id, file_path, filename)

    async def listdir(self, disk_id: Optional[str], file_path: Optional[str] = "/") -> dict:
        return await asyncio.to_thread(self._list, disk_id, file_path)

    async def exists(self, disk_id: Optional[str], file_path: Optional[str], filename: str) -> bool:
        path = self.resolve(disk_id, file_path, filename)
        return await asyncio.to_thread(path.is_file)

    async def files(self, disk_id: Optional[str]) -> list[str]:
        """Every file on the disk, as disk-relative paths."""
        paths = await asyncio.to_thread(self._all_files, disk_id)
        return [self._relative(disk_id, p) for p in paths]


_FILE_PATH = {
    "type": "string",
    "description": "Directory on the disk, e.g. '/' or '/notes/'. Defaults to '/'.",
}
_FILENAME = {"type": "string", "description": "File name without directory."}

DISK_SCHEMAS = [
    function_schema(
        "write_file_disk",
        "Write a text file to the session disk, creating or overwriting it.",
        {
            "file_path": _FILE_PATH,
            "filename": _FILENAME,
            "content": {"type": "string", "description": "Full text content to write."},
        },
        ["filename", "content"],
    ),
    function_schema(
        "read_file_disk",
        "Read a text file from the session disk, optionally a range of lines.",
        {
            "file_path": _FILE_PATH,
            "filename": _FILENAME,
            "line_offset": {"type": "integer", "description": "First line to return (0-based)."},
            "line_limit": {"type": "integer", "description": "Maximum number of lines to return."},
        },
        ["filename"],
    ),
    function_schema(
        "replace_string_disk",
        "Replace an exact string in a file on the session disk.",
        {
            "file_path": _FILE_PATH,
            "filename": _FILENAME,
            "old_string": {"type": "string", "description": "Exact text to replace."},
            "new_string": {"type": "string", "description": "Replacement text."},
        },
        ["filename", "old_string", "new_string"],
    ),
    function_schema(
        "list_disk",
        "List files and directories in a directory of the session disk.",
        {"file_path": _FILE_PATH},
        [],
    ),
    function_schema(
        "download_file_disk",
        "Get a download location for a file on the session disk.",
        {"file_path": _FILE_PATH, "filename": _FILENAME},
        ["filename"],
    ),
    function_schema(
        "grep_disk",
        "Search text files on the session disk with a regular expression.",
        {
            "query": {"type": "string", "description": "Regular expression to search for."},
            "limit": {"type": "integer", "description": "Maximum number of matches (default 100)."},
        },
        ["query"],
    ),
    function_schema(
        "glob_disk",
        "Find files on the session disk whose path matches a glob pattern, e.g. '**/*.md'.",
        {
            "query": {"type": "string", "description": "Glob pattern matched against file paths."},
            "limit": {"type": "integer", "description": "Maximum number of paths (default 100)."},
        },
        ["query"],
    ),
]


class DiskTools:
    """Executes the ``*_disk`` tools against a LocalDiskStore."""

    def __init__(self, store: LocalDiskStore):
        self.store = store

    async def execute(self, name: str, args: dict, context: ToolContext):
        handler = getattr(self, f"_{name}", None)
        if handler is None or name not in DISK_TOOL_NAMES:
            raise ValueError(f"Unknown disk tool: {name}")
        logger.debug(f"Executing disk tool {name} on disk {context.disk_id or DEFAULT_DISK_ID}")
        return await handler(context.disk_id, args)

    async def _write_file_disk(self, disk_id, args: dict) -> str:
        content = args.get("content")
        if content is None:
            raise ValueError("content is required")
        path = await self.store.write(disk_id, args.get("file_path"), args.get("filename"), str(content))
        return f"File '{path}' written successfully."

    async def _read_file_disk(self, disk_id, args: dict) -> str:
        text = await self.store.read(disk_id, args.get("file_path"), args.get("filename"))
        offset = args.get("line_offset")
        limit = args.get("line_limit")
        if offset is None and limit is None:
            return text
        lines = text.splitlines()
        start = int(offset or 0)
        end = start + int(limit) if limit is not None else None
        return "\n".join(lines[start:end])

    async def _replace_string_disk(self, disk_id, args: dict) -> str:
        old_string = args.get("old_string")
        new_string = args.get("new_string", "")
        if not old_string:
            raise ValueError("old_string is required")
        file_path, filename = args.get("file_path"), args.get("filename")
        text = await self.store.read(disk_id, file_path, filename)
        count = text.count(old_string)
        if count == 0:
            raise ValueError(f"String not found in '{filename}'")
        await self.store.write(disk_id, file_path, filename, text.replace(old_string, str(new_string)))
        return f"Replaced {count} occurrence(s) in '{normalize_dir(file_path)}{filename}'."

    async def _list_disk(self, disk_id, args: dict) -> dict:
        return await self.store.listdir(disk_id, args.get("file_path"))

    async def _download_file_disk(self, disk_id, args: dict):
        file_path = normalize_dir(args.get("file_path"))
        filename = args.get("filename")
        if filename and await self.store.exists(disk_id, file_path, filename):
            path = self.store.resolve(disk_id, file_path, filename)
            return {"path": f"{file_path}{filename}", "url": path.as_uri()}

        listing = await self.store.listdir(disk_id, file_path)
        available = [entry["filename"] for entry in listing["files"]]
        if available:
            hint = f"Available files: {', '.join(available)}"
        else:
            hint = "No files available in this path."
        message = f'File "{filename or "unknown"}" not found in path "{file_path}". {hint}'
        logger.warning(f"File not found, returning friendly message: {message}")
        return message

    async def _grep_disk(self, disk_id, args: dict) -> dict:
        query = args.get("query")
        if not query:
            raise ValueError("query is required")
        try:
            pattern = re.compile(query)
        except re.error as e:
            raise ValueError(f"Invalid regular expression '{query}': {e}") from e
        limit = int(args.get("limit") or 100)

        matches = []
        for path in await self.store.files(disk_id):
            directory, filename = posixpath.split(path)
            try:
                text = await self.store.read(disk_id, directory, filename)
            except (OSError, UnicodeError):
                continue
            for number, line in enumerate(text.splitlines(), start=1):
                if pattern.search(line):
                    matches.append({"path": path, "line": number, "text": line[:500]})
                    if len(matches) >= limit:
                        return {"query": query, "matches": matches, "truncated": True}
        return {"query": query, "matches": matches, "truncated": False}

    async def _glob_disk(self, disk_id, args: dict) -> dict:
        query = args.get("query")
        if not query:
            raise ValueError("query is required")
        limit = int(args.get("limit") or 100)
        pattern = query.lstrip("/")
        paths = [
            path for path in await self.store.files(disk_id)
            if fnmatch.fnmatch(path.lstrip("/"), pattern)
            or fnmatch.fnmatch(posixpath.basename(path), pattern)
        ]
        return {"query": query, "paths": paths[:limit], "count": len(paths)}


def create_disk_family(store: LocalDiskStore) -> ToolFamily:
    """Build the disk tool family bound to ``store``."""
    tools = DiskTools(store)
    return ToolFamily(
        name="disk",
        owns=names_matcher(*DISK_TOOL_NAMES),
        execute=tools.execute,
        schemas=list(DISK_SCHEMAS),
    )
