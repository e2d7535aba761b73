import csv
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .models import (
    Hash, KeepUnchanged, MediaFile, MetaAttribute, MoveAction, RemoveAction, RenameAction,
    RenamePlan, RunSummary,
)
from .organization.similarity import SameImageAdepts


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> List[str]:
    """Plain text table, one string per line."""
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    def line(cells):
        return " | ".join(str(c).ljust(w) for c, w in zip(cells, widths)).rstrip()

    separator = "-+-".join("-" * w for w in widths)
    return [line(headers), separator, *(line(r) for r in rows)]


@dataclass
class MetaStats:
    models: List[Tuple[str, int]] = field(default_factory=list)
    hashes: List[Tuple[str, int]] = field(default_factory=list)


class ReportGenerator:
    """Everything the user gets to read at the end of a run goes through here."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def _log_table(self, title: str, headers, rows):
        logging.info(title)
        for text in format_table(headers, rows):
            logging.info(text)

    # --- Run summary ---

    def log_summary(self, summary: RunSummary):
        rows = [
            ["Renamed", summary.renamed],
            ["Copied", summary.copied],
            ["Moved", summary.moved],
            ["Removed", summary.removed],
            ["Skipped", summary.skipped],
            ["Failed", summary.failed],
        ]
        self._log_table("=== Summary ===", ["Action", "Count"], rows)
        self.log_failures(summary.errors)

    def log_failures(self, errors: Sequence[Exception]):
        if not errors:
            return
        logging.error(f"{len(errors)} failures:")
        for error in errors:
            logging.error(f" - {error}")

    # --- Metadata statistics ---

    def meta_stats(self, files: List[MediaFile], hashes: Dict[Path, Optional[Hash]]) -> MetaStats:
        """
        Count of files per camera model (ascending) and per hash. Hashes seen
        only once are left out unless verbose.
        """
        models = Counter(f.metadata.get(MetaAttribute.MODEL) or "-" for f in files)
        stats = MetaStats(models=sorted(models.items(), key=lambda kv: kv[1]))

        counted = Counter(hashes.get(f.path) or "-" for f in files)
        stats.hashes = sorted(
            (h, count) for h, count in counted.items()
            if self.verbose or count > 1
        )

        self._log_table("Models", ["Model", "Count"], stats.models)
        self._log_table("Hashes", [f"Hash ({len(stats.hashes)})", "Count"], stats.hashes)

        if self.verbose:
            for f in files:
                meta = ", ".join(f"{k.value}: {v}" for k, v in f.metadata.items()) or "---"
                logging.debug(f"{f.name.value} | {f.path} | {meta}")
        return stats

    # --- Same images ---

    def log_same_images(self, adepts: SameImageAdepts):
        stages = [
            ("metadata", adepts.by_metadata),
            ("created at", adepts.by_created_at),
            ("gps", adepts.by_gps),
        ]
        for label, groups in stages:
            for group in groups:
                logging.info(f"Same {label}: " + ", ".join(str(f.path) for f in group))

        if adepts.by_content:
            rows = [[f"{p.similarity:.2f}", str(p.first.path), str(p.second.path)] for p in adepts.by_content]
            self._log_table("Similar content", ["Similarity", "Image", "Image"], rows)

        logging.info(f"Found {adepts.count} groups of probably same images.")
        self.log_failures(adepts.errors)

    # --- Plan export ---

    def write_plan_csv(self, plan: RenamePlan, output_csv: Path):
        headers = ["Action", "Source Path", "Target Path", "Notes"]

        rows = []
        for action in [*plan.renames, *plan.moves, *plan.removes, *plan.kept]:
            if isinstance(action, RenameAction):
                rows.append(["Rename", action.source, action.target, ""])
            elif isinstance(action, MoveAction):
                rows.append(["Move", action.source, action.target, f"Hash {action.hash}"])
            elif isinstance(action, RemoveAction):
                rows.append(["Remove", action.source, "", f"Duplicate of {action.duplicate_of}"])
            elif isinstance(action, KeepUnchanged):
                rows.append(["Keep", action.source, action.source, ""])
        for file in plan.skipped:
            rows.append(["Skip", file.path, "", "Already hashed"])
        for file in plan.no_metadata:
            rows.append(["Skip", file.path, "", "No metadata"])

        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(headers)
            writer.writerows([[str(c) for c in row] for row in rows])

        logging.info(f"Plan written to {output_csv} ({len(rows)} rows)")
