import logging
from typing import Optional

from .. import config
from ..concurrency import CancelToken, run_concurrently
from ..models import MoveAction, RemoveAction, RenameAction, RenamePlan, RunSummary
from ..scanning.filesystem import LocalFileSystem


class FileMover:
    """
    Applies a RenamePlan.

    Renames, moves and removes are three sub-batches sharing one pool.
    A failed item is recorded and the rest continue.
    """

    def __init__(self,
                 fs: Optional[LocalFileSystem] = None,
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 cancel: Optional[CancelToken] = None):
        self.fs = fs or LocalFileSystem()
        self.max_workers = max_workers
        self.progress = progress
        self.cancel = cancel

    def execute(self, plan: RenamePlan, dry_run: bool = False) -> RunSummary:
        summary = RunSummary(
            skipped=len(plan.skipped) + len(plan.kept) + len(plan.no_metadata),
            errors=list(plan.errors),
        )
        summary.failed = len(plan.errors)

        if not plan.actions:
            logging.info("No files need renaming.")
            return summary

        logging.info(f"Processing {len(plan.actions)} actions (DryRun={dry_run})...")

        renamed, moved, removed = run_concurrently(
            [
                (plan.renames, lambda a: self.apply(a, dry_run)),
                (plan.moves, lambda a: self.apply(a, dry_run)),
                (plan.removes, lambda a: self.apply(a, dry_run)),
            ],
            max_workers=self.max_workers,
            progress=self.progress,
            cancel=self.cancel,
            desc="Organizing",
        )

        summary.renamed = len(renamed.results)
        summary.moved = len(moved.results)
        summary.removed = len(removed.results)
        for batch in (renamed, moved, removed):
            summary.skipped += len(batch.cancelled)
            for action, error in batch.errors:
                logging.error(f"Failed to process {action.source}: {error}")
                summary.errors.append(error)
                summary.failed += 1

        return summary

    def apply(self, action, dry_run: bool = False):
        if isinstance(action, RenameAction):
            if dry_run:
                logging.info(f"[DRY RUN] Rename {action.source} -> {action.target}")
                return
            self.fs.move(action.source, action.target)
            logging.debug(f"Renamed {action.source} -> {action.target}")

        elif isinstance(action, MoveAction):
            if dry_run:
                logging.info(f"[DRY RUN] Move {action.source} -> {action.target}")
                return
            self.fs.move(action.source, action.target)
            logging.debug(f"Moved {action.source} -> {action.target}")

        elif isinstance(action, RemoveAction):
            if dry_run:
                logging.info(f"[DRY RUN] Remove {action.source} (duplicate of {action.duplicate_of})")
                return
            self.fs.delete(action.source)
            logging.debug(f"Removed {action.source}")

        else:
            raise TypeError(f"Unknown action {action!r}")
