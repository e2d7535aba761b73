import pytest

from media_organizer.models import MetaAttribute
from media_organizer.organization.similarity import (
    SameImageFinder, SimilarityGrouper, clamp_threshold, complete_key, gps_key,
)
from media_organizer.scanning.filesystem import DiskScanner
from media_organizer.metadata.extract import MetadataLoader

from conftest import CANON, write_image

def scan(root):
    return DiskScanner(MetadataLoader()).scan(root)

@pytest.mark.parametrize("value, expected", [(-5, 0.0), (50, 50.0), (150, 100.0)])
def test_threshold_is_clamped(value, expected):
    assert clamp_threshold(value) == expected
    assert SimilarityGrouper(threshold=value).threshold == expected

def test_groups_similar_images(tmp_path, fake_metadata):
    write_image(tmp_path / "a.png", color=(200, 100, 50))
    write_image(tmp_path / "b.png", color=(201, 100, 50))
    write_image(tmp_path / "c.png", color=(200, 100, 50), size=(48, 64))  # portrait, different length

    result = SimilarityGrouper(threshold=99).group(scan(tmp_path))

    assert [(p.first.path.name, p.second.path.name) for p in result.pairs] == [("a.png", "b.png")]
    assert result.pairs[0].similarity > 99

def test_pairs_sorted_by_similarity(tmp_path, fake_metadata):
    write_image(tmp_path / "a.png", color=(200, 100, 50))
    write_image(tmp_path / "b.png", color=(150, 100, 50))
    write_image(tmp_path / "c.png", color=(200, 100, 50))

    result = SimilarityGrouper(threshold=0).group(scan(tmp_path))
    scores = [p.similarity for p in result.pairs]

    assert len(result.pairs) == 3
    assert scores == sorted(scores, reverse=True)
    assert (result.pairs[0].first.path.name, result.pairs[0].second.path.name) == ("a.png", "c.png")
    assert result.pairs[0].similarity == 100.0

def test_undecodable_images_are_errors(tmp_path, fake_metadata):
    write_image(tmp_path / "a.png")
    (tmp_path / "b.jpg").write_bytes(b"not an image")

    result = SimilarityGrouper().group(scan(tmp_path))

    assert result.pairs == []
    assert len(result.hashed) == 1
    assert len(result.errors) == 1

def test_videos_are_not_compared(tmp_path, fake_metadata):
    write_image(tmp_path / "a.png")
    (tmp_path / "clip.mov").write_bytes(b"video")

    result = SimilarityGrouper().group(scan(tmp_path))

    assert result.errors == []
    assert [h.file.path.name for h in result.hashed] == ["a.png"]

def test_keys(tmp_path, fake_metadata, make_file):
    path = tmp_path / "a.jpg"
    path.touch()
    fake_metadata["a.jpg"] = {
        **CANON,
        MetaAttribute.GPS_LATITUDE: "50",
        MetaAttribute.GPS_LONGITUDE: "14",
        MetaAttribute.GPS_ALTITUDE: "250",
    }
    file = make_file(path)

    assert complete_key(file) == "2022:04:01 14:16:48-Canon-50-14-250"
    assert gps_key(file) == "50-14-250"

def test_same_image_finder_stages(tmp_path, fake_metadata):
    gps = {MetaAttribute.GPS_LATITUDE: "50", MetaAttribute.GPS_LONGITUDE: "14", MetaAttribute.GPS_ALTITUDE: "1"}
    fake_metadata["a.png"] = CANON
    fake_metadata["b.png"] = CANON
    fake_metadata["c.png"] = {MetaAttribute.CREATED_AT: "2020:01:01 00:00:00", MetaAttribute.MODEL: "X"}
    fake_metadata["d.png"] = {MetaAttribute.CREATED_AT: "2020:01:01 00:00:00", MetaAttribute.MODEL: "Y"}
    fake_metadata["e.png"] = {**gps, MetaAttribute.MODEL: "X"}
    fake_metadata["f.png"] = {**gps, MetaAttribute.MODEL: "Y"}
    for name, color in [("a", 1), ("b", 2), ("c", 3), ("d", 4), ("e", 5), ("f", 6)]:
        write_image(tmp_path / f"{name}.png", color=(color * 40, 0, 0))
    # No metadata: can only be matched by content
    write_image(tmp_path / "g.png", color=(10, 200, 10))
    write_image(tmp_path / "h.png", color=(10, 200, 10))

    adepts = SameImageFinder(SimilarityGrouper(threshold=100)).find(scan(tmp_path))

    names = lambda groups: [[f.path.name for f in g] for g in groups]
    assert names(adepts.by_metadata) == [["a.png", "b.png"]]
    assert names(adepts.by_created_at) == [["c.png", "d.png"]]
    assert names(adepts.by_gps) == [["e.png", "f.png"]]
    assert [(p.first.path.name, p.second.path.name) for p in adepts.by_content] == [("g.png", "h.png")]
    assert adepts.count == 4
