import json
import logging
import pytest
import subprocess

import media_organizer.metadata.extract as extract_module
from media_organizer.metadata.extract import MetadataExtractor, MetadataLoader
from media_organizer.models import FileKind, MediaFile, MetaAttribute, NormalName

from conftest import write_image

# Mock MediaInfo class structure
class MockTrack:
    def __init__(self, **kwargs):
        self.track_type = "General"
        for k, v in kwargs.items():
            setattr(self, k, v)

class MockMediaInfo:
    track_data = {}

    def __init__(self, tracks):
        self.tracks = tracks

    @classmethod
    def parse(cls, path):
        return cls([MockTrack(**cls.track_data)])

@pytest.fixture
def media_info(monkeypatch):
    """Installs MockMediaInfo; set MockMediaInfo.track_data per test."""
    monkeypatch.setattr(extract_module, "MediaInfo", MockMediaInfo)
    monkeypatch.setattr(MockMediaInfo, "track_data", {})
    return MockMediaInfo

@pytest.fixture
def no_exiftool(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("exiftool")
    monkeypatch.setattr(subprocess, "check_output", missing)

def test_video_metadata_extraction(media_info, tmp_path):
    media_info.track_data = dict(
        duration=5000,
        recorded_date="2023-01-01 12:00:00",
        device_model="TestCam",
    )
    vid = tmp_path / "test.mp4"
    vid.touch()

    meta = MetadataExtractor().get_video_metadata(vid)

    assert meta[MetaAttribute.CREATED_AT] == "2023:01:01 12:00:00"
    assert meta[MetaAttribute.MODEL] == "TestCam"

def test_video_metadata_prefers_quicktime_tags(media_info, tmp_path):
    media_info.track_data = dict(
        comapplequicktimecreationdate="2021-07-14T18:30:05+02:00",
        encoded_date="UTC 2021-07-14 16:30:05",
        comapplequicktimemodel="iPhone 12",
        comapplequicktimelocationiso6709="+50.0755+014.4378+250.000/",
        codec_id="qt  ",
    )
    vid = tmp_path / "clip.mov"
    vid.touch()

    meta = MetadataExtractor().get_video_metadata(vid)

    # Local wall clock time, offset dropped
    assert meta[MetaAttribute.CREATED_AT] == "2021:07:14 18:30:05"
    assert meta[MetaAttribute.MODEL] == "iPhone 12"
    assert meta[MetaAttribute.GPS_ISO6709] == "+50.0755+014.4378+250.000/"
    assert meta[MetaAttribute.MAJOR_BRAND] == "qt"

def test_video_metadata_utc_encoded_date(media_info, tmp_path):
    media_info.track_data = dict(encoded_date="UTC 2020-02-03 04:05:06")
    vid = tmp_path / "clip.mp4"
    vid.touch()

    meta = MetadataExtractor().get_video_metadata(vid)
    assert meta[MetaAttribute.CREATED_AT] == "2020:02:03 04:05:06"

def test_video_falls_back_to_exiftool(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", None)
    payload = [{
        "CreateDate": "2019:05:06 07:08:09",
        "Model": "Pixel 4",
        "GPSLatitude": "50 deg 4' 31.80\" N",
    }]
    monkeypatch.setattr(subprocess, "check_output", lambda *a, **kw: json.dumps(payload))
    vid = tmp_path / "clip.mp4"
    vid.touch()

    meta = MetadataExtractor().get_video_metadata(vid)

    assert meta[MetaAttribute.CREATED_AT] == "2019:05:06 07:08:09"
    assert meta[MetaAttribute.MODEL] == "Pixel 4"
    assert MetaAttribute.GPS_LONGITUDE not in meta

def test_video_without_any_tool_is_empty(monkeypatch, no_exiftool, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", None)
    vid = tmp_path / "clip.mp4"
    vid.touch()

    assert dict(MetadataExtractor().get_video_metadata(vid)) == {}

def test_image_metadata_maps_exif_tags(monkeypatch, tmp_path):
    tags = {
        "EXIF DateTimeOriginal": "2022:04:01 14:16:48",
        "Image Model": " Canon EOS 80D ",
        "GPS GPSLatitude": "[50, 4, 31]",
        "Image Make": "Canon",
    }
    monkeypatch.setattr(extract_module.exifread, "process_file", lambda f, details=False: tags)
    img = tmp_path / "IMG_1.jpg"
    img.touch()

    meta = MetadataExtractor().get_image_metadata(img)

    assert dict(meta) == {
        MetaAttribute.CREATED_AT: "2022:04:01 14:16:48",
        MetaAttribute.MODEL: "Canon EOS 80D",
        MetaAttribute.GPS_LATITUDE: "[50, 4, 31]",
    }

def test_image_unparsable_date_is_dropped(monkeypatch, tmp_path, caplog):
    tags = {"EXIF DateTimeOriginal": "0000:00:00 00:00:00", "Image Model": "Canon"}
    monkeypatch.setattr(extract_module.exifread, "process_file", lambda f, details=False: tags)
    img = tmp_path / "IMG_1.jpg"
    img.touch()

    with caplog.at_level(logging.WARNING):
        meta = MetadataExtractor().get_image_metadata(img)

    assert MetaAttribute.CREATED_AT not in meta
    assert meta[MetaAttribute.MODEL] == "Canon"
    assert "unparsable date" in caplog.text

def test_image_parse_failure_is_empty(monkeypatch, tmp_path, caplog):
    def broken(f, details=False):
        raise ValueError("corrupt")
    monkeypatch.setattr(extract_module.exifread, "process_file", broken)
    img = tmp_path / "IMG_1.jpg"
    img.touch()

    with caplog.at_level(logging.WARNING):
        meta = MetadataExtractor().get_image_metadata(img)

    assert dict(meta) == {}
    assert "could not be parsed" in caplog.text

def test_image_without_exif_is_empty(tmp_path):
    img = write_image(tmp_path / "plain.png")
    assert dict(MetadataExtractor().get_image_metadata(img)) == {}

def test_metadata_is_read_only(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module.exifread, "process_file",
                        lambda f, details=False: {"Image Model": "Canon"})
    img = tmp_path / "IMG_1.jpg"
    img.touch()

    meta = MetadataExtractor().get_image_metadata(img)
    with pytest.raises(TypeError):
        meta[MetaAttribute.MODEL] = "Nikon"

def test_extract_dispatches_by_kind(monkeypatch, tmp_path):
    monkeypatch.setattr(MetadataExtractor, "get_image_metadata", lambda self, p: "image")
    monkeypatch.setattr(MetadataExtractor, "get_video_metadata", lambda self, p: "video")
    extractor = MetadataExtractor()

    assert extractor.extract(FileKind.IMAGE, tmp_path / "a.jpg") == "image"
    assert extractor.extract(FileKind.VIDEO, tmp_path / "a.mov") == "video"

@pytest.mark.parametrize("raw, expected", [
    ("2022:04:01 14:16:48", "2022-04-01 14:16:48"),
    ("2022-04-01T14:16:48Z", "2022-04-01 14:16:48"),
    ("2022-04-01T14:16:48.123456", "2022-04-01 14:16:48"),
    ("UTC 2022-04-01 14:16:48", "2022-04-01 14:16:48"),
    ("1601-01-01 00:00:00", None),
    ("garbage", None),
    ("", None),
])
def test_parse_flexible_date(raw, expected):
    dt = MetadataExtractor()._parse_flexible_date(raw)
    assert (str(dt) if dt else None) == expected

def test_loader_reads_each_path_once(monkeypatch, tmp_path):
    calls = []

    def extract(self, kind, path):
        calls.append(path)
        return {MetaAttribute.MODEL: "Canon"}

    monkeypatch.setattr(MetadataExtractor, "extract", extract)
    loader = MetadataLoader()
    path = tmp_path / "IMG_1.jpg"
    file = MediaFile(kind=FileKind.IMAGE, path=path, name=NormalName(path.name), source=loader)

    assert file.metadata[MetaAttribute.MODEL] == "Canon"
    assert file.metadata[MetaAttribute.MODEL] == "Canon"
    assert calls == [path]
