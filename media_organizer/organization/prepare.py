import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional, Set, Tuple

from .. import config
from ..concurrency import CancelToken, run_parallel
from ..exceptions import ConfigurationError, NoMetadataError
from ..models import MediaFile, PrepareOptions, RunSummary, TargetDirMode
from ..scanning.filesystem import DiskScanner, LocalFileSystem
from ..scanning.hasher import HashEngine, hash_created

ONLY_MONTH = re.compile(r"^(?:(\d{4})-)?(\d{1,2})$")


@dataclass(frozen=True)
class PreparedCopy:
    file: MediaFile
    name: str
    created: Optional[Tuple[int, int]]


class PrepareCommand:
    """
    Copies media from source directories into a target directory.

    Files are copied under their hashed name when they have metadata, and
    under their original name otherwise. Files whose name is already
    present in the target (or in an excluded directory or list) are not
    copied again.
    """

    def __init__(self,
                 scanner: Optional[DiskScanner] = None,
                 engine: Optional[HashEngine] = None,
                 fs: Optional[LocalFileSystem] = None,
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 cancel: Optional[CancelToken] = None):
        self.scanner = scanner or DiskScanner()
        self.engine = engine or HashEngine()
        self.fs = fs or LocalFileSystem()
        self.max_workers = max_workers
        self.progress = progress
        self.cancel = cancel

    def run(self, options: PrepareOptions) -> RunSummary:
        summary = RunSummary()
        dry_run = options.mode is TargetDirMode.DRY_RUN

        if options.exclude_list is not None and not options.exclude_list.is_file():
            raise ConfigurationError(f"Exclude list {options.exclude_list} does not exist.")
        if not dry_run:
            self.fs.ensure_directory(options.target)

        # --- Step 1: Find all media in sources ---
        skip = {options.target} if options.mode is not TargetDirMode.OVERRIDE else set()
        sources = list(dict.fromkeys(options.sources))
        files = self.scanner.scan_many(sources, skip_dirs=skip)

        prepared, errors = self._name_files(files)
        if options.only_month is not None:
            prepared = [p for p in prepared if p.created == options.only_month]
            logging.info(f"Only files from {options.only_month[0]:04d}-{options.only_month[1]:02d}: {len(prepared)} left")
        summary.errors.extend(errors)
        summary.failed = len(errors)

        # --- Step 2: Exclude what is already there ---
        excluded = self.find_excluded_names(options)
        logging.info(f"Excluding {len(excluded)} file names")

        to_copy = [
            p for p in prepared
            if p.name not in excluded and p.file.original_name not in excluded
        ]
        summary.skipped = len(files) - len(to_copy) - len(errors)
        logging.info(f"There are {len(to_copy)} files to copy")

        # --- Step 3: Copy ---
        overwrite = options.mode is TargetDirMode.OVERRIDE
        batch = run_parallel(
            to_copy,
            lambda p: self._copy(p, self.target_path(p, options), dry_run, overwrite),
            max_workers=self.max_workers,
            progress=self.progress,
            cancel=self.cancel,
            desc="Copying",
        )
        summary.copied = len(batch.results)
        summary.skipped += len(batch.cancelled)
        for p, error in batch.errors:
            logging.error(f"Failed to copy {p.file.path}: {error}")
            summary.errors.append(error)
            summary.failed += 1

        return summary

    def _name_files(self, files: List[MediaFile]):
        batch = run_parallel(
            files,
            self._prepare_one,
            max_workers=self.max_workers,
            progress=self.progress,
            cancel=self.cancel,
            desc="Reading metadata",
        )

        # Same name from several sources: the first one wins
        prepared = {}
        for p in batch.values:
            prepared.setdefault(p.name, p)
        logging.info(f"Found {len(prepared)} distinct files in sources")
        return list(prepared.values()), [error for _, error in batch.errors]

    def _prepare_one(self, file: MediaFile) -> PreparedCopy:
        if file.is_hashed:
            return PreparedCopy(file, file.name.value, hash_created(file.name.hash))
        try:
            file_hash = self.engine.hash_file(file)
        except NoMetadataError as e:
            logging.warning(f"{e}, it is copied under its original name.")
            return PreparedCopy(file, file.original_name, None)
        return PreparedCopy(file, f"{file_hash}{file.path.suffix.lower()}", hash_created(file_hash))

    def find_excluded_names(self, options: PrepareOptions) -> Set[str]:
        dirs: List[Path] = list(options.exclude)
        if options.mode is not TargetDirMode.OVERRIDE:
            dirs.insert(0, options.target)

        names: Set[str] = set()
        if options.exclude_list is not None:
            for line in options.exclude_list.read_text(encoding="utf-8").splitlines():
                line = line.strip()
                if not line:
                    continue
                entry = Path(line)
                if entry.is_dir():
                    dirs.append(entry)
                else:
                    names.add(entry.name)

        for directory in dict.fromkeys(dirs):
            if not directory.is_dir():
                continue
            names.update(path.name for path in self.fs.list_files(directory))
        return names

    @staticmethod
    def target_path(prepared: PreparedCopy, options: PrepareOptions) -> Path:
        target = options.target
        subdir = options.by_year or options.by_month
        if not subdir:
            return target / prepared.name

        if prepared.created is None:
            if options.fallback:
                return target / options.fallback / prepared.name
            return target / prepared.name

        year, month = prepared.created
        if options.by_year and options.by_month:
            return target / config.FOLDER_PATTERN.format(year=year, month=month) / prepared.name
        if options.by_year:
            return target / f"{year:04d}" / prepared.name
        return target / f"{month:02d}" / prepared.name

    def _copy(self, prepared: PreparedCopy, target: Path, dry_run: bool, overwrite: bool):
        if dry_run:
            logging.info(f"[DRY RUN] Copy {prepared.file.path} -> {target}")
            return
        self.fs.copy(prepared.file.path, target, overwrite=overwrite)
        logging.debug(f"Copied {prepared.file.path} -> {target}")


def parse_only_month(value: str, today: Optional[date] = None) -> Tuple[int, int]:
    """Accepts "YYYY-MM", "YYYY-M", "MM" or "M". A bare month means the current year."""
    today = today or date.today()
    m = ONLY_MONTH.match(value.strip())
    if not m:
        raise ConfigurationError(f"Month {value!r} is not in the MM or YYYY-MM format.")
    year = int(m.group(1)) if m.group(1) else today.year
    month = int(m.group(2))
    if not 1 <= month <= 12:
        raise ConfigurationError(f"Month {value!r} is out of range.")
    return year, month


def current_month(today: Optional[date] = None) -> Tuple[int, int]:
    today = today or date.today()
    return today.year, today.month


def previous_month(today: Optional[date] = None) -> Tuple[int, int]:
    today = today or date.today()
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1
