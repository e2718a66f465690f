"""
File System Access for the Artifact Tree

Provides the engine's only persistence layer:
- LocalFileSystem: read, write, append, delete, glob and text search under a project root
- ChangeSet: staged writes and deletions for one generation
- OverlayFileSystem: read view of the tree with a ChangeSet applied on top

All paths are POSIX-style and relative to the project root. Writes go through a
temp file plus rename so a file is either fully old or fully new.
"""

import logging
import os
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set, Union

from scenario_engine.config import DEFAULT_SKIP_DIRS
from scenario_engine.error_handling import ArtifactIOError

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    """One line matched by a text search."""
    path: str
    line_number: int
    line: str


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a glob with `**` support into a compiled regex.

    `**/` matches zero or more directories, `*` and `?` never cross a slash.
    """
    i = 0
    out = []
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def _static_prefix(pattern: str) -> str:
    """Directory part of a glob before the first wildcard."""
    parts = []
    for part in pattern.split("/")[:-1]:
        if any(ch in part for ch in "*?["):
            break
        parts.append(part)
    return "/".join(parts)


class LocalFileSystem:
    """
    File system rooted at a project directory.

    Usage:
        fs = LocalFileSystem("/path/to/project")
        for path in fs.glob("bdd/features/**/*.feature"):
            text = fs.read_text(path)
    """

    def __init__(self, root: Union[str, Path], skip_dirs: Optional[Set[str]] = None):
        """
        Initialize the file system.

        Args:
            root: Project root directory
            skip_dirs: Directory names never descended into (default: DEFAULT_SKIP_DIRS)
        """
        self.root = Path(root).resolve()
        self.skip_dirs = set(skip_dirs) if skip_dirs is not None else set(DEFAULT_SKIP_DIRS)

    def resolve(self, path: str) -> Path:
        resolved = (self.root / path).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise ArtifactIOError(f"Path escapes project root: {path}", context={"path": path})
        return resolved

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def is_file(self, path: str) -> bool:
        return self.resolve(path).is_file()

    def is_dir(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def read_text(self, path: str) -> str:
        with open(self.resolve(path), "r", encoding="utf-8") as f:
            return f.read()

    def write_text(self, path: str, content: str) -> None:
        """
        Write a file atomically (temp file, then rename).

        Args:
            path: Target path relative to root
            content: Full file content
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_file = target.with_name(target.name + ".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
            os.replace(temp_file, target)
        finally:
            if temp_file.exists():
                temp_file.unlink()

    def append_text(self, path: str, content: str) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "a", encoding="utf-8", newline="\n") as f:
            f.write(content)

    def delete(self, path: str) -> None:
        self.resolve(path).unlink()

    def walk_files(self, base: str = "") -> Iterator[str]:
        """Yield every file under base (relative paths), skipping skip_dirs and hidden dirs."""
        start = self.resolve(base) if base else self.root
        if not start.is_dir():
            return
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames[:] = sorted(
                d for d in dirnames if d not in self.skip_dirs and not d.startswith(".")
            )
            rel_dir = Path(dirpath).relative_to(self.root).as_posix()
            for filename in sorted(filenames):
                yield filename if rel_dir == "." else f"{rel_dir}/{filename}"

    def glob(self, pattern: str) -> List[str]:
        """
        List files matching a glob pattern.

        Args:
            pattern: Glob relative to root, `**` allowed

        Returns:
            Sorted list of matching file paths
        """
        regex = glob_to_regex(pattern)
        return sorted(p for p in self.walk_files(_static_prefix(pattern)) if regex.match(p))

    def search(
        self,
        pattern: str,
        file_glob: str = "**/*",
        limit: Optional[int] = None,
        flags: int = re.IGNORECASE
    ) -> List[SearchHit]:
        """
        Search file contents line by line.

        Args:
            pattern: Regular expression to search for
            file_glob: Restrict to files matching this glob
            limit: Stop after this many hits
            flags: Regex flags

        Returns:
            List of SearchHit in path order
        """
        regex = re.compile(pattern, flags)
        hits: List[SearchHit] = []
        for path in self.glob(file_glob):
            try:
                text = self.read_text(path)
            except (OSError, UnicodeDecodeError):
                # Binary or unreadable files are not searchable
                continue
            for number, line in enumerate(text.splitlines(), 1):
                if regex.search(line):
                    hits.append(SearchHit(path=path, line_number=number, line=line.strip()))
                    if limit is not None and len(hits) >= limit:
                        return hits
        return hits

    @contextmanager
    def lock(self, path: str):
        """
        Hold an exclusive lock file for the duration of a write.

        The lock is created with O_EXCL; an existing lock means another writer
        is active and the current write is refused.

        Raises:
            ArtifactIOError: If the lock is already held
        """
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(target, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise ArtifactIOError(
                f"Artifact tree lock held by another writer: {path}",
                context={"lock_file": path},
                original_error=e,
            ) from e
        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
            os.close(fd)
            yield
        finally:
            if target.exists():
                target.unlink()


@dataclass
class ChangeSet:
    """
    Staged mutations of the artifact tree.

    `writes` holds the final content of every created or modified file;
    `deletions` holds files to remove. A path is never in both.
    """
    writes: Dict[str, str] = field(default_factory=dict)
    deletions: Set[str] = field(default_factory=set)

    def stage_write(self, path: str, content: str) -> None:
        self.deletions.discard(path)
        self.writes[path] = content

    def stage_delete(self, path: str) -> None:
        self.writes.pop(path, None)
        self.deletions.add(path)

    @property
    def touched(self) -> List[str]:
        return sorted(set(self.writes) | self.deletions)

    def is_empty(self) -> bool:
        return not self.writes and not self.deletions


class OverlayFileSystem:
    """
    Read view of a LocalFileSystem with a ChangeSet layered on top.

    Writes, appends and deletions are staged into the ChangeSet; nothing
    reaches the disk until the synchronizer applies it.
    """

    def __init__(self, base: LocalFileSystem, changes: Optional[ChangeSet] = None):
        self.base = base
        self.changes = changes if changes is not None else ChangeSet()

    @property
    def root(self) -> Path:
        return self.base.root

    def exists(self, path: str) -> bool:
        if path in self.changes.writes:
            return True
        if path in self.changes.deletions:
            return False
        if self.base.exists(path):
            return True
        return self.is_dir(path)

    def is_file(self, path: str) -> bool:
        if path in self.changes.writes:
            return True
        if path in self.changes.deletions:
            return False
        return self.base.is_file(path)

    def is_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        if any(p.startswith(prefix) for p in self.changes.writes):
            return True
        if not self.base.is_dir(path):
            return False
        return any(
            p not in self.changes.deletions for p in self.base.walk_files(path.rstrip("/"))
        ) or not any(p.startswith(prefix) for p in self.changes.deletions)

    def read_text(self, path: str) -> str:
        if path in self.changes.writes:
            return self.changes.writes[path]
        if path in self.changes.deletions:
            raise FileNotFoundError(path)
        return self.base.read_text(path)

    def write_text(self, path: str, content: str) -> None:
        self.changes.stage_write(path, content)

    def append_text(self, path: str, content: str) -> None:
        current = self.read_text(path) if self.is_file(path) else ""
        self.changes.stage_write(path, current + content)

    def delete(self, path: str) -> None:
        self.changes.stage_delete(path)

    def glob(self, pattern: str) -> List[str]:
        regex = glob_to_regex(pattern)
        paths = {p for p in self.base.glob(pattern) if p not in self.changes.deletions}
        paths.update(p for p in self.changes.writes if regex.match(p))
        return sorted(paths)

    def search(self, pattern: str, file_glob: str = "**/*", limit: Optional[int] = None,
               flags: int = re.IGNORECASE) -> List[SearchHit]:
        regex = re.compile(pattern, flags)
        hits: List[SearchHit] = []
        for path in self.glob(file_glob):
            try:
                text = self.read_text(path)
            except (OSError, UnicodeDecodeError):
                continue
            for number, line in enumerate(text.splitlines(), 1):
                if regex.search(line):
                    hits.append(SearchHit(path=path, line_number=number, line=line.strip()))
                    if limit is not None and len(hits) >= limit:
                        return hits
        return hits
