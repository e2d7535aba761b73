import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .. import config
from ..concurrency import CancelToken, run_parallel
from ..metadata.perceptual import ImageWithHash, PerceptualHasher
from ..models import FileKind, MediaFile, MetaAttribute


@dataclass(frozen=True)
class SimilarPair:
    first: MediaFile
    second: MediaFile
    similarity: float


@dataclass
class SimilarityResult:
    pairs: List[SimilarPair] = field(default_factory=list)
    hashed: List[ImageWithHash] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)


def clamp_threshold(threshold: float) -> float:
    return max(0.0, min(100.0, float(threshold)))


class SimilarityGrouper:
    """
    Pairwise perceptual comparison of images.

    Every pair is compared, so this is quadratic in the number of images;
    only the images no cheaper strategy could match should be fed to it.
    """

    def __init__(self,
                 hasher: Optional[PerceptualHasher] = None,
                 threshold: float = config.DEFAULT_SIMILARITY,
                 max_workers: int = config.DEFAULT_WORKERS,
                 progress=None,
                 cancel: Optional[CancelToken] = None):
        self.hasher = hasher or PerceptualHasher()
        self.threshold = clamp_threshold(threshold)
        self.max_workers = max_workers
        self.progress = progress
        self.cancel = cancel

    def group(self, images: List[MediaFile]) -> SimilarityResult:
        result = SimilarityResult()
        images = [f for f in images if f.kind is FileKind.IMAGE]

        batch = run_parallel(
            images,
            self.hasher.generate_for_file,
            max_workers=self.max_workers,
            progress=self.progress,
            cancel=self.cancel,
            desc="Hashing pixels",
        )
        for file, error in batch.errors:
            logging.warning(str(error))
            result.errors.append(error)
        result.hashed = batch.values

        hashed = result.hashed
        pairs = []
        for i in range(len(hashed)):
            for j in range(i + 1, len(hashed)):
                similarity = PerceptualHasher.compare(hashed[i].hash, hashed[j].hash)
                if similarity >= self.threshold:
                    pairs.append(SimilarPair(hashed[i].file, hashed[j].file, similarity))

        # sorted() is stable: equal scores keep discovery order
        result.pairs = sorted(pairs, key=lambda p: p.similarity, reverse=True)
        logging.info(f"Compared {len(hashed)} images, {len(result.pairs)} pairs >= {self.threshold:g}%")
        return result


@dataclass
class SameImageAdepts:
    """Groups of images that are probably the same picture, by the stage that matched them."""
    by_metadata: List[List[MediaFile]] = field(default_factory=list)
    by_created_at: List[List[MediaFile]] = field(default_factory=list)
    by_gps: List[List[MediaFile]] = field(default_factory=list)
    by_content: List[SimilarPair] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.by_metadata) + len(self.by_created_at) + len(self.by_gps) + len(self.by_content)


def complete_key(file: MediaFile) -> str:
    metadata = file.metadata
    return "-".join(metadata[attr] for attr in MetaAttribute if attr in metadata)


def created_at_key(file: MediaFile) -> str:
    return file.metadata.get(MetaAttribute.CREATED_AT, "")


def gps_key(file: MediaFile) -> str:
    metadata = file.metadata
    parts = [
        metadata.get(MetaAttribute.GPS_LATITUDE),
        metadata.get(MetaAttribute.GPS_LONGITUDE),
        metadata.get(MetaAttribute.GPS_ALTITUDE),
    ]
    return "-".join(p for p in parts if p) or metadata.get(MetaAttribute.GPS_ISO6709, "")


class SameImageFinder:
    """
    Finds images that are probably the same picture.

    Cheap stages first: identical metadata, identical capture time,
    identical position. Whatever is left goes through pixel comparison.
    """

    def __init__(self, grouper: Optional[SimilarityGrouper] = None,
                 max_workers: int = config.DEFAULT_WORKERS,
                 cancel: Optional[CancelToken] = None):
        self.grouper = grouper or SimilarityGrouper(max_workers=max_workers, cancel=cancel)
        self.max_workers = max_workers
        self.cancel = cancel

    def find(self, images: List[MediaFile]) -> SameImageAdepts:
        adepts = SameImageAdepts()
        images = [f for f in images if f.kind is FileKind.IMAGE]

        # Metadata is memoized per file, load it all up front
        loaded = run_parallel(images, lambda f: f.metadata, max_workers=self.max_workers,
                              cancel=self.cancel, desc="Reading metadata")
        for file, error in loaded.errors:
            logging.warning(str(error))
            adepts.errors.append(error)
        failed = {file.path for file, _ in loaded.errors}

        remaining = [f for f in images if f.path not in failed and f.metadata]
        without_metadata = [f for f in images if f.path not in failed and not f.metadata]

        adepts.by_metadata, remaining = self._stage(remaining, complete_key)
        adepts.by_created_at, remaining = self._stage(remaining, created_at_key)
        adepts.by_gps, remaining = self._stage(remaining, gps_key)

        content = self.grouper.group(remaining + without_metadata)
        adepts.by_content = content.pairs
        adepts.errors.extend(content.errors)
        return adepts

    def _stage(self, files: List[MediaFile], key: Callable[[MediaFile], str]):
        buckets: Dict[str, List[MediaFile]] = defaultdict(list)
        for file in files:
            value = key(file)
            if value:
                buckets[value].append(file)

        groups = [group for group in buckets.values() if len(group) > 1]
        grouped = {f.path for group in groups for f in group}
        return groups, [f for f in files if f.path not in grouped]
