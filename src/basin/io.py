"""File read, write and recursive-delete adapters used by pipeline handlers."""
import asyncio
import errno
import glob
import os
import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

from basin.errors import FileSystemError

logger = structlog.get_logger()


@dataclass(frozen=True)
class FileContent:
    """Result of reading a file.

    Attributes:
        path: Path relative to the root the file was read against.
        content: Decoded UTF-8 file content.
    """

    path: str
    content: str


def relative_path(path: str | os.PathLike[str], root: str | os.PathLike[str] | None) -> str:
    """Express a path relative to a root, with POSIX separators.

    Relative paths are assumed to be relative to the root already and are
    returned unchanged apart from separator normalization.

    Args:
        path: Absolute or root-relative path.
        root: Base directory, or None to keep the path as given.

    Returns:
        Root-relative POSIX path.
    """
    candidate = Path(path)
    if root is None or not candidate.is_absolute():
        return candidate.as_posix()
    return Path(os.path.relpath(candidate, Path(root).absolute())).as_posix()


def absolute_path(path: str | os.PathLike[str], root: str | os.PathLike[str] | None) -> Path:
    """Resolve a root-relative path into a filesystem path.

    Args:
        path: Absolute or root-relative path.
        root: Base directory, or None for the current directory.

    Returns:
        Path usable for filesystem access.
    """
    candidate = Path(path)
    if candidate.is_absolute() or root is None:
        return candidate
    return Path(root) / candidate


def _error_code(error: OSError) -> str | None:
    if error.errno is None:
        return None
    return errno.errorcode.get(error.errno, str(error.errno))


def _wrap_os_error(action: str, path: Path, error: OSError) -> FileSystemError:
    if isinstance(error, FileNotFoundError):
        return FileSystemError(f"File not found: {path}", str(path), "ENOENT")
    if isinstance(error, PermissionError):
        return FileSystemError(f"Permission denied: {path}", str(path), "EACCES")
    return FileSystemError(f"Failed to {action} {path}: {error}", str(path), _error_code(error))


def _read_text(filepath: Path) -> str:
    try:
        return filepath.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise FileSystemError(
            f"File is not valid UTF-8: {filepath}", str(filepath), "EILSEQ"
        ) from e
    except OSError as e:
        raise _wrap_os_error("read", filepath, e) from e


async def read_file(
    path: str | os.PathLike[str],
    root: str | os.PathLike[str] | None = None,
) -> FileContent:
    """Read a text file.

    Args:
        path: Absolute path, or path relative to root.
        root: Base directory the returned path is relative to.

    Returns:
        FileContent with the root-relative path and decoded content.

    Raises:
        FileSystemError: If the file cannot be read or decoded.
    """
    filepath = absolute_path(path, root)
    content = await asyncio.to_thread(_read_text, filepath)
    logger.debug("file_read", path=str(filepath), size=len(content))
    return FileContent(path=relative_path(path, root), content=content)


def _write(filepath: Path, content: str | bytes) -> None:
    try:
        filepath.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            filepath.write_bytes(content)
        else:
            filepath.write_text(content, encoding="utf-8")
    except OSError as e:
        raise _wrap_os_error("write", filepath, e) from e


async def write_file(
    path: str | os.PathLike[str],
    content: str | bytes,
    root: str | os.PathLike[str] | None = None,
) -> Path:
    """Write a file, creating intermediate directories as needed.

    Args:
        path: Absolute path, or path relative to root.
        content: Text (written as UTF-8) or raw bytes.
        root: Base directory for relative paths.

    Returns:
        Path of the written file.

    Raises:
        FileSystemError: If a directory or the file cannot be written.
    """
    filepath = absolute_path(path, root)
    await asyncio.to_thread(_write, filepath, content)
    logger.debug("file_written", path=str(filepath), size=len(content))
    return filepath


def _remove(pattern: str) -> int:
    removed = 0
    # Deepest paths first, so nested matches go before their parents.
    for match in sorted(glob.glob(pattern, recursive=True), key=len, reverse=True):
        target = Path(match)
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise _wrap_os_error("remove", target, e) from e
        removed += 1
    return removed


async def remove_tree(pattern: str | os.PathLike[str]) -> int:
    """Recursively delete every file and directory matching a glob.

    Missing entries are skipped.

    Args:
        pattern: Glob pattern; ``**`` matches across directories.

    Returns:
        Number of entries removed.

    Raises:
        FileSystemError: If an entry cannot be removed.
    """
    removed = await asyncio.to_thread(_remove, os.fspath(pattern))
    logger.debug("tree_removed", pattern=os.fspath(pattern), removed=removed)
    return removed
