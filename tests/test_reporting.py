import csv
import logging
from pathlib import Path

from media_organizer.models import (
    FileKind, HashedName, KeepUnchanged, MediaFile, MetaAttribute, MoveAction, NormalName,
    RemoveAction, RenameAction, RenameFile, RenamePlan, RunSummary,
)
from media_organizer.reporting import ReportGenerator, format_table

def media(path, metadata=None):
    return MediaFile(
        kind=FileKind.IMAGE, path=Path(path), name=NormalName(Path(path).name),
        source=(lambda f: metadata or {}),
    )

def test_format_table_aligns_columns():
    lines = format_table(["Model", "Count"], [["Canon", 12], ["-", 3]])
    assert lines[0] == "Model | Count"
    assert lines[1] == "------+------"
    assert lines[2] == "Canon | 12"
    assert lines[3] == "-     | 3"

def test_summary_and_failures(caplog):
    summary = RunSummary(renamed=2, removed=1, errors=[ValueError("boom")], failed=1)
    with caplog.at_level(logging.INFO):
        ReportGenerator().log_summary(summary)

    assert "Renamed | 2" in caplog.text
    assert "1 failures" in caplog.text
    assert "boom" in caplog.text

def test_meta_stats_counts_models_and_repeated_hashes():
    files = [
        media("/a.jpg", {MetaAttribute.MODEL: "Canon"}),
        media("/b.jpg", {MetaAttribute.MODEL: "Canon"}),
        media("/c.jpg", {MetaAttribute.MODEL: "Nikon"}),
        media("/d.jpg"),
    ]
    hashes = {Path("/a.jpg"): "i_1", Path("/b.jpg"): "i_1", Path("/c.jpg"): "i_2", Path("/d.jpg"): None}

    stats = ReportGenerator().meta_stats(files, hashes)

    assert stats.models[-1] == ("Canon", 2)
    assert set(stats.models) == {("Canon", 2), ("Nikon", 1), ("-", 1)}
    assert stats.hashes == [("i_1", 2)]

def test_meta_stats_verbose_lists_every_hash():
    files = [media("/a.jpg", {MetaAttribute.MODEL: "Canon"}), media("/c.jpg")]
    hashes = {Path("/a.jpg"): "i_1"}

    stats = ReportGenerator(verbose=True).meta_stats(files, hashes)

    assert stats.hashes == [("-", 1), ("i_1", 1)]

def test_write_plan_csv(tmp_path):
    original = media(tmp_path / "IMG_1.jpg")
    renamed = MediaFile(kind=FileKind.IMAGE, path=tmp_path / "i_1.jpg", name=HashedName("i_1", ".jpg"), cached_hash="i_1")
    rename = RenameFile(original, renamed)
    plan = RenamePlan(
        renames=[RenameAction(rename)],
        moves=[MoveAction("i_1", rename, tmp_path / "i_1" / "IMG_1.jpg")],
        removes=[RemoveAction(media(tmp_path / "IMG_2.jpg"), duplicate_of=tmp_path / "IMG_1.jpg")],
        kept=[KeepUnchanged(renamed)],
        no_metadata=[media(tmp_path / "IMG_3.jpg")],
    )
    out = tmp_path / "plan.csv"

    ReportGenerator().write_plan_csv(plan, out)

    with open(out, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0] == ["Action", "Source Path", "Target Path", "Notes"]
    assert [r[0] for r in rows[1:]] == ["Rename", "Move", "Remove", "Keep", "Skip"]
    assert rows[1][2] == str(tmp_path / "i_1.jpg")
    assert rows[-1][3] == "No metadata"
