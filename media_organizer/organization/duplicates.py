import logging
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..exceptions import FileOperationError
from ..models import MoveAction, RemoveAction, RenameFile, Resolution
from ..scanning.filesystem import LocalFileSystem


class DuplicateResolver:
    """
    Classifies rename candidates that collide on the same target name.

    Candidates are grouped by target path. Within a group, byte size decides:
      - one candidate                  -> rename
      - several, all of the same size  -> first is renamed, the rest removed
      - several, sizes differ          -> all moved into a `<hash>/` subdirectory,
                                          keeping their original names

    A target already present on disk counts as the first member of its
    group: same size candidates are removed, the others moved.
    """

    def __init__(self, fs: Optional[LocalFileSystem] = None):
        self.fs = fs or LocalFileSystem()
        # Cache used names to prevent collisions within a single run
        self.used_names: Dict[Path, Set[str]] = defaultdict(set)

    def resolve(self, candidates: List[RenameFile]) -> Resolution:
        result = Resolution()

        groups: Dict[Path, List[RenameFile]] = {}
        for candidate in candidates:
            groups.setdefault(candidate.target, []).append(candidate)

        for target, group in groups.items():
            sized = self._sizes(group, result)
            if not sized:
                continue

            if self.fs.exists(target):
                self._against_occupant(target, sized, result)
                continue

            if len(sized) == 1:
                result.to_rename.append(sized[0][0])
                continue

            if len({size for _, size in sized}) == 1:
                keeper = sized[0][0]
                result.to_rename.append(keeper)
                for candidate, _ in sized:
                    if candidate is not keeper:
                        result.to_remove.append(RemoveAction(candidate.original, duplicate_of=keeper.original.path))
            else:
                logging.info(f"{len(sized)} files share the name {target.name} with different sizes")
                for candidate, _ in sized:
                    result.to_move.append(self._move(candidate))

        return result

    def _sizes(self, group: List[RenameFile], result: Resolution) -> List[tuple]:
        sized = []
        for candidate in group:
            try:
                sized.append((candidate, self.fs.file_size(candidate.original.path)))
            except FileOperationError as e:
                logging.error(str(e))
                result.errors.append(e)
        return sized

    def _against_occupant(self, target: Path, sized: List[tuple], result: Resolution):
        try:
            occupant_size = self.fs.file_size(target)
        except FileOperationError as e:
            logging.error(str(e))
            result.errors.append(e)
            return

        for candidate, size in sized:
            if size == occupant_size:
                result.to_remove.append(RemoveAction(candidate.original, duplicate_of=target))
            else:
                result.to_move.append(self._move(candidate))

    def _move(self, candidate: RenameFile) -> MoveAction:
        file_hash = candidate.renamed.cached_hash
        folder = candidate.target.parent / file_hash
        target = self._resolve_collision(folder, candidate.original.original_name)
        return MoveAction(hash=file_hash, rename=candidate, target=target)

    def _resolve_collision(self, folder: Path, filename: str) -> Path:
        """Ensures filename is unique in the destination folder."""
        stem = Path(filename).stem
        ext = Path(filename).suffix
        candidate = filename
        counter = 1

        while candidate in self.used_names[folder] or self.fs.exists(folder / candidate):
            candidate = f"{stem}_{counter}{ext}"
            counter += 1

        self.used_names[folder].add(candidate)
        return folder / candidate
