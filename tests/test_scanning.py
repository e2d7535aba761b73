import pytest
from pathlib import Path

from media_organizer.exceptions import FileOperationError, PrepareError
from media_organizer.models import FileKind, HashedName, NormalName
from media_organizer.scanning.filesystem import DiskScanner, LocalFileSystem, iter_files

def test_iter_files_skips_and_sorts(tmp_path):
    root = tmp_path
    skip_dir = root / "skip"
    skip_dir.mkdir()
    (skip_dir / "skip.jpg").write_text("skip")

    sub = root / "a"
    sub.mkdir()
    (sub / "b.jpg").write_text("b")
    (root / "c.jpg").write_text("c")
    (root / "B.jpg").write_text("B")
    (root / ".hidden.jpg").write_text("h")
    hidden_dir = root / ".thumbs"
    hidden_dir.mkdir()
    (hidden_dir / "t.jpg").write_text("t")

    files = list(iter_files(root, skip_dirs={skip_dir}))

    assert files == [root / "B.jpg", root / "c.jpg", sub / "b.jpg"]

def test_scanner_classifies_media(tmp_path):
    (tmp_path / "IMG_1.JPG").write_bytes(b"x")
    (tmp_path / "clip.MOV").write_bytes(b"x")
    (tmp_path / "i_20220401T141648_9afe0fba.jpeg").write_bytes(b"x")
    (tmp_path / "notes.txt").write_text("x")

    files = DiskScanner().scan(tmp_path)
    by_name = {f.original_name: f for f in files}

    assert set(by_name) == {"IMG_1.JPG", "clip.MOV", "i_20220401T141648_9afe0fba.jpeg"}
    assert by_name["IMG_1.JPG"].kind is FileKind.IMAGE
    assert by_name["clip.MOV"].kind is FileKind.VIDEO
    assert by_name["IMG_1.JPG"].name == NormalName("IMG_1.JPG")
    assert isinstance(by_name["i_20220401T141648_9afe0fba.jpeg"].name, HashedName)

def test_scanner_does_not_read_metadata(tmp_path):
    calls = []
    (tmp_path / "IMG_1.jpg").write_bytes(b"x")

    files = DiskScanner(source=lambda f: calls.append(f) or {}).scan(tmp_path)

    assert len(files) == 1
    assert calls == []

def test_scanner_missing_root(tmp_path):
    with pytest.raises(PrepareError):
        DiskScanner().scan(tmp_path / "missing")

def test_move_refuses_to_overwrite(tmp_path):
    fs = LocalFileSystem()
    src = tmp_path / "a.jpg"
    dst = tmp_path / "b.jpg"
    src.write_bytes(b"a")
    dst.write_bytes(b"b")

    with pytest.raises(FileOperationError):
        fs.move(src, dst)
    assert src.read_bytes() == b"a"
    assert dst.read_bytes() == b"b"

def test_move_creates_parent(tmp_path):
    fs = LocalFileSystem()
    src = tmp_path / "a.jpg"
    src.write_bytes(b"a")
    dst = tmp_path / "2022" / "04" / "a.jpg"

    fs.move(src, dst)

    assert not src.exists()
    assert dst.read_bytes() == b"a"

def test_copy_and_overwrite(tmp_path):
    fs = LocalFileSystem()
    src = tmp_path / "a.jpg"
    dst = tmp_path / "out" / "a.jpg"
    src.write_bytes(b"new")

    fs.copy(src, dst)
    assert dst.read_bytes() == b"new"

    src.write_bytes(b"newer")
    with pytest.raises(FileOperationError):
        fs.copy(src, dst)
    fs.copy(src, dst, overwrite=True)
    assert dst.read_bytes() == b"newer"

def test_delete_and_size(tmp_path):
    fs = LocalFileSystem()
    path = tmp_path / "a.jpg"
    path.write_bytes(b"12345")

    assert fs.file_size(path) == 5
    fs.delete(path)
    assert not fs.exists(path)

    with pytest.raises(FileOperationError):
        fs.file_size(path)
    with pytest.raises(FileOperationError):
        fs.delete(path)
