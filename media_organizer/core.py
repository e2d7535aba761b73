import logging
from pathlib import Path
from typing import Dict, Optional

from . import config
from .concurrency import CancelToken, run_parallel
from .database.cache import HashCache
from .exceptions import ConfigurationError, NoMetadataError
from .metadata.extract import MetadataExtractor, MetadataLoader
from .metadata.perceptual import PerceptualHasher
from .models import Hash, PrepareOptions, RenameOptions, RunSummary
from .organization.mover import FileMover
from .organization.prepare import PrepareCommand
from .organization.rules import RenamePlanner
from .organization.similarity import SameImageAdepts, SameImageFinder, SimilarityGrouper
from .progress import NullProgress
from .reporting import MetaStats, ReportGenerator
from .scanning.filesystem import DiskScanner, LocalFileSystem
from .scanning.hasher import HashEngine


class MediaOrganizerApp:
    """
    Entry point for every command. Wires scanner, metadata loader, hash
    engine, cache and executors together for one run.

    Args:
        cache_db: SQLite file backing the hash cache.
        max_workers: Thread pool size for every parallel stage.
        progress: Progress observer (see progress.py).
        timeout: Seconds after which no new work is started.
        extractor: Metadata extractor, replaceable in tests.
    """

    def __init__(self,
                 cache_db: Path = config.CACHE_DB_PATH,
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 timeout: Optional[float] = None,
                 verbose: bool = False,
                 extractor: Optional[MetadataExtractor] = None):
        self.cache = HashCache(cache_db)
        self.max_workers = max_workers
        self.progress = progress or NullProgress()
        self.cancel = CancelToken(timeout)
        self.loader = MetadataLoader(extractor)
        self.scanner = DiskScanner(self.loader)
        self.fs = LocalFileSystem()
        self.reporter = ReportGenerator(verbose=verbose)

    def _require_dir(self, path: Path) -> Path:
        if not path.is_dir():
            raise ConfigurationError(f"Directory {path} does not exist or is not accessible.")
        return path

    def _engine(self, use_cache: bool) -> HashEngine:
        if not use_cache:
            return HashEngine()
        self.cache.load()
        logging.info("Cache for hashes is loaded.")
        return HashEngine(self.cache)

    def _workers(self):
        return dict(max_workers=self.max_workers, progress=self.progress, cancel=self.cancel)

    # --- Commands ---

    def prepare(self, options: PrepareOptions) -> RunSummary:
        if not options.sources:
            raise ConfigurationError("At least one source directory is required.")
        for source in options.sources:
            self._require_dir(source)

        engine = self._engine(options.use_cache)
        command = PrepareCommand(self.scanner, engine, self.fs, **self._workers())
        summary = command.run(options)

        if options.use_cache:
            self.cache.flush()
        self.reporter.log_summary(summary)
        return summary

    def rename_by_meta(self, target: Path, options: Optional[RenameOptions] = None,
                       report_csv: Optional[Path] = None) -> RunSummary:
        options = options or RenameOptions()
        self._require_dir(target)
        if options.root_dir is not None and options.create_subdirs and not options.dry_run:
            self.fs.ensure_directory(options.root_dir)

        engine = self._engine(options.use_cache)
        files = self.scanner.scan(target)

        planner = RenamePlanner(engine, self.fs, **self._workers())
        plan = planner.plan(files, target, options)
        if report_csv is not None:
            self.reporter.write_plan_csv(plan, report_csv)

        summary = FileMover(self.fs, **self._workers()).execute(plan, dry_run=options.dry_run)

        if options.use_cache and not options.dry_run:
            # Renamed files keep their hash under the new path
            for action in plan.renames:
                if not action.target.exists():
                    continue
                self.cache.set(action.target, action.rename.renamed.cached_hash)
            self.cache.flush()

        self.reporter.log_summary(summary)
        return summary

    def find_same(self, target: Path, threshold: float = config.DEFAULT_SIMILARITY) -> SameImageAdepts:
        self._require_dir(target)
        files = self.scanner.scan(target)

        grouper = SimilarityGrouper(PerceptualHasher(), threshold, **self._workers())
        finder = SameImageFinder(grouper, max_workers=self.max_workers, cancel=self.cancel)
        adepts = finder.find(files)

        self.reporter.log_same_images(adepts)
        return adepts

    def meta_stats(self, target: Path) -> MetaStats:
        self._require_dir(target)
        files = self.scanner.scan(target)
        engine = HashEngine()

        def file_hash(file) -> Optional[Hash]:
            if file.is_hashed:
                return file.name.hash
            try:
                return engine.hash_file(file)
            except NoMetadataError:
                return None

        batch = run_parallel(files, file_hash, desc="Reading metadata", **self._workers())
        hashes: Dict[Path, Optional[Hash]] = {file.path: value for file, value in batch.results}
        for file, error in batch.errors:
            logging.warning(f"{file.path}: {error}")

        return self.reporter.meta_stats(files, hashes)

    def cache_preload(self, target: Path) -> RunSummary:
        """Hashes every not yet renamed file below `target` into the persistent cache."""
        self._require_dir(target)
        engine = self._engine(use_cache=True)
        files = [f for f in self.scanner.scan(target) if not f.is_hashed]

        summary = RunSummary()
        batch = run_parallel(files, engine.hash_file, desc="Preloading", **self._workers())
        for file, error in batch.errors:
            if isinstance(error, NoMetadataError):
                summary.skipped += 1
                logging.debug(str(error))
            else:
                summary.failed += 1
                summary.errors.append(error)
                logging.error(f"Failed to hash {file.path}: {error}")

        written = self.cache.flush()
        logging.info(f"Cache preloaded: {len(batch.results)} hashes ({written} new), {summary.skipped} files without metadata.")
        self.reporter.log_failures(summary.errors)
        return summary

    def cache_clear(self):
        self.cache.clear()
        logging.info("Cache was cleared.")
