import os
import logging
import shutil
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Set

from ..exceptions import FileOperationError, PrepareError
from ..models import FileKind, MediaFile, MetadataSource
from .hasher import parse_file_name


def iter_files(root: Path, skip_dirs: Optional[Set[Path]] = None) -> Iterator[Path]:
    """Depth-first walker using os.scandir. Dot files and dot directories are ignored."""
    skip_dirs = {Path(d).absolute() for d in (skip_dirs or set())}
    stack = [Path(root)]
    while stack:
        current = stack.pop()
        absolute = current.absolute()
        if skip_dirs and any(sd == absolute or sd in absolute.parents for sd in skip_dirs):
            logging.debug(f"Skipping excluded directory {current}")
            continue

        try:
            with os.scandir(current) as it:
                entries = list(it)
        except OSError as e:
            logging.warning(f"Cannot read directory {current}: {e}")
            continue

        # Sort for stable traversal order
        entries.sort(key=lambda e: e.name.lower())

        dirs = []
        files = []
        for e in entries:
            if e.name.startswith("."):
                continue
            if e.is_dir(follow_symlinks=False):
                dirs.append(Path(e.path))
            elif e.is_file(follow_symlinks=False):
                files.append(Path(e.path))

        # Push dirs to stack (reversed so we process A before Z)
        for d in reversed(dirs):
            stack.append(d)

        for f in files:
            yield f


class DiskScanner:
    """
    Discovers media files below a directory and wraps them as MediaFile.

    Metadata is not read here; every MediaFile gets `source` attached and
    loads it on first access.
    """

    def __init__(self, source: Optional[MetadataSource] = None):
        self.source = source

    def scan(self, root: Path, skip_dirs: Optional[Set[Path]] = None) -> List[MediaFile]:
        root = Path(root)
        if not root.is_dir():
            raise PrepareError(f"Directory {root} does not exist.")

        files = []
        ignored = 0
        for path in iter_files(root, skip_dirs):
            media = self.classify(path)
            if media is None:
                ignored += 1
                logging.debug(f"Ignoring non-media file {path}")
                continue
            files.append(media)

        logging.info(f"Found {len(files)} media files in {root} ({ignored} other files ignored)")
        return files

    def scan_many(self, roots: Iterable[Path], skip_dirs: Optional[Set[Path]] = None) -> List[MediaFile]:
        files = []
        for root in roots:
            files.extend(self.scan(root, skip_dirs))
        return files

    def classify(self, path: Path) -> Optional[MediaFile]:
        kind = FileKind.from_extension(path.suffix)
        if kind is None:
            return None
        return MediaFile(kind=kind, path=path, name=parse_file_name(path.name), source=self.source)


class LocalFileSystem:
    """
    Filesystem operations used by the planner, the mover and prepare.
    Every failure is raised as FileOperationError. Nothing is overwritten
    unless `copy` is explicitly asked to.
    """

    def file_size(self, path: Path) -> int:
        try:
            return path.stat().st_size
        except OSError as e:
            raise FileOperationError(path, e) from e

    def exists(self, path: Path) -> bool:
        return path.exists()

    def ensure_directory(self, path: Path):
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(path, e) from e

    def move(self, src: Path, dst: Path):
        if dst.exists():
            raise FileOperationError(src, FileExistsError(f"Target {dst} already exists"))
        self.ensure_directory(dst.parent)
        try:
            shutil.move(str(src), str(dst))
        except OSError as e:
            raise FileOperationError(src, e) from e

    def copy(self, src: Path, dst: Path, overwrite: bool = False):
        if dst.exists() and not overwrite:
            raise FileOperationError(src, FileExistsError(f"Target {dst} already exists"))
        self.ensure_directory(dst.parent)
        try:
            shutil.copy2(src, dst)
        except OSError as e:
            raise FileOperationError(src, e) from e

    def delete(self, path: Path):
        try:
            path.unlink()
        except OSError as e:
            raise FileOperationError(path, e) from e

    def list_files(self, root: Path, skip_dirs: Optional[Set[Path]] = None) -> List[Path]:
        return list(iter_files(root, skip_dirs))
