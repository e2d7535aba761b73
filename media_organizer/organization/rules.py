import re
import logging
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

from .. import config
from ..concurrency import CancelToken, run_parallel
from ..exceptions import NoMetadataError
from ..models import (
    KeepUnchanged, MediaFile, RenameAction, RenameFile, RenameOptions, RenamePlan,
)
from ..scanning.filesystem import LocalFileSystem
from ..scanning.hasher import HashEngine, hash_created
from .duplicates import DuplicateResolver

YEAR = re.compile(config.YEAR_PATTERN)
MONTH = re.compile(config.MONTH_PATTERN)


def correct_year_month(path: Path, created: Optional[Tuple[int, int]]) -> Path:
    """
    Rewrites `.../<yyyy>/<MM>/name` so both segments agree with `created`.
    Only the last two parent segments are touched, and only when they look
    like a year and a month.
    """
    if created is None:
        return path
    month_dir = path.parent
    year_dir = month_dir.parent
    if not (MONTH.match(month_dir.name) and YEAR.match(year_dir.name)):
        return path

    year, month = created
    if (int(year_dir.name), int(month_dir.name)) == (year, month):
        return path
    return year_dir.parent / f"{year:04d}" / f"{month:02d}" / path.name


def subdir_target(path: Path, root: Path, created: Optional[Tuple[int, int]], fallback: Optional[str]) -> Path:
    if created is not None:
        year, month = created
        return root / config.FOLDER_PATTERN.format(year=year, month=month) / path.name
    if fallback:
        return root / fallback / path.name
    return path


class RenamePlanner:
    """
    Builds the plan for `rename-by-meta`.

    Stages, each finished before the next starts:
      1. prepare: hash every candidate (concurrently). Files already carrying
         a hashed name are skipped, files without metadata are reported.
      2. analyze: correct the target directory, then let DuplicateResolver
         classify colliding targets.
    Execution is left to FileMover.
    """

    def __init__(self,
                 engine: Optional[HashEngine] = None,
                 fs: Optional[LocalFileSystem] = None,
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 cancel: Optional[CancelToken] = None):
        self.engine = engine or HashEngine()
        self.fs = fs or LocalFileSystem()
        self.max_workers = max_workers
        self.progress = progress
        self.cancel = cancel

    def plan(self, files: List[MediaFile], target_root: Path, options: Optional[RenameOptions] = None) -> RenamePlan:
        options = options or RenameOptions()
        plan = RenamePlan()

        candidates = self._prepare(files, options, plan)
        logging.info(f"Prepared {len(candidates)} files for renaming "
                     f"({len(plan.skipped)} already hashed, {len(plan.no_metadata)} without metadata)")

        self._analyze(candidates, target_root, options, plan)
        return plan

    # --- Stage 1 ---

    def _prepare(self, files: List[MediaFile], options: RenameOptions, plan: RenamePlan) -> List[RenameFile]:
        pending = []
        for file in files:
            producer = self.engine.convert_to_hash(file, rehash=options.rehash)
            if producer is None:
                plan.skipped.append(file)
            else:
                pending.append((file, producer))

        batch = run_parallel(
            pending,
            lambda item: item[1](),
            max_workers=self.max_workers,
            progress=self.progress,
            cancel=self.cancel,
            desc="Hashing",
        )

        for (file, _), error in batch.errors:
            if isinstance(error, NoMetadataError):
                logging.warning(str(error))
                plan.no_metadata.append(file)
            else:
                logging.error(f"Failed to prepare {file.path}: {error}")
                plan.errors.append(error)

        return batch.values

    # --- Stage 2 ---

    def _analyze(self, candidates: List[RenameFile], target_root: Path, options: RenameOptions, plan: RenamePlan):
        root = options.root_dir or target_root
        to_resolve = []

        # Deterministic representative: the first path in sort order wins
        for candidate in sorted(candidates, key=lambda c: str(c.original.path)):
            # Already moved into its <hash>/ folder by an earlier size collision
            if candidate.original.path.parent.name == candidate.renamed.cached_hash:
                plan.kept.append(KeepUnchanged(candidate.original))
                continue

            created = hash_created(candidate.renamed.cached_hash)
            if options.create_subdirs:
                target = subdir_target(candidate.target, root, created, options.fallback)
            else:
                target = correct_year_month(candidate.target, created)

            if target != candidate.target:
                candidate = RenameFile(candidate.original, replace(candidate.renamed, path=target))

            if candidate.target == candidate.original.path:
                plan.kept.append(KeepUnchanged(candidate.original))
            else:
                to_resolve.append(candidate)

        resolution = DuplicateResolver(self.fs).resolve(to_resolve)
        plan.renames = [RenameAction(r) for r in resolution.to_rename]
        plan.moves = resolution.to_move
        plan.removes = resolution.to_remove
        plan.errors.extend(resolution.errors)

        logging.info(f"Plan: {len(plan.renames)} to rename, {len(plan.removes)} to remove, "
                     f"{len(plan.moves)} to move, {len(plan.kept)} unchanged")
