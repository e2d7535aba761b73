import pytest
import sqlite3
from PIL import Image

from media_organizer.database.schema import init_schema
from media_organizer.database.ops import CacheOperations
from media_organizer.metadata.extract import MetadataExtractor, MetadataLoader
from media_organizer.models import EMPTY_METADATA, FileKind, MediaFile, MetaAttribute, metadata_map
from media_organizer.scanning.hasher import parse_file_name

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def cache_ops(conn):
    """Returns a CacheOperations instance attached to the in-memory DB."""
    return CacheOperations(conn)

class FakeMetadata(dict):
    def __init__(self):
        super().__init__()
        self.calls = []

@pytest.fixture
def fake_metadata(monkeypatch):
    """
    Replaces metadata extraction with a lookup by file name.
    Fill the returned dict with {name: {MetaAttribute: value}}.
    """
    table = FakeMetadata()

    def extract(self, kind, path):
        table.calls.append(path)
        values = table.get(path.name)
        return metadata_map(values) if values else EMPTY_METADATA

    monkeypatch.setattr(MetadataExtractor, "extract", extract)
    return table

@pytest.fixture
def make_file():
    """Builds a MediaFile for an existing path, loading metadata through the (patched) extractor."""
    loader = MetadataLoader()

    def _make(path, kind=None):
        kind = kind or FileKind.from_extension(path.suffix)
        return MediaFile(kind=kind, path=path, name=parse_file_name(path.name), source=loader)

    return _make

def write_image(path, color=(200, 100, 50), size=(64, 48)):
    """Writes a small solid color image with Pillow."""
    Image.new("RGB", size, color).save(path)
    return path

CANON = {
    MetaAttribute.CREATED_AT: "2022:04:01 14:16:48",
    MetaAttribute.MODEL: "Canon",
}
