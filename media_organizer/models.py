from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Callable, List, Mapping, NewType, Optional, Tuple, Union

from . import config


class FileKind(Enum):
    IMAGE = "image"
    VIDEO = "video"

    @property
    def prefix(self) -> str:
        return config.IMAGE_PREFIX if self is FileKind.IMAGE else config.VIDEO_PREFIX

    @classmethod
    def from_prefix(cls, prefix: str) -> Optional["FileKind"]:
        if prefix == config.IMAGE_PREFIX:
            return cls.IMAGE
        if prefix == config.VIDEO_PREFIX:
            return cls.VIDEO
        return None

    @classmethod
    def from_extension(cls, ext: str) -> Optional["FileKind"]:
        ext = ext.lower()
        if ext in config.VIDEO_EXTS:
            return cls.VIDEO
        if ext in config.IMAGE_EXTS:
            return cls.IMAGE
        return None

    def accepts(self, ext: str) -> bool:
        exts = config.IMAGE_EXTS if self is FileKind.IMAGE else config.VIDEO_EXTS
        return ext.lower() in exts


class MetaAttribute(Enum):
    CREATED_AT = "CreatedAt"
    MODEL = "Model"
    GPS_LATITUDE = "GpsLatitude"
    GPS_LONGITUDE = "GpsLongitude"
    GPS_ALTITUDE = "GpsAltitude"
    GPS_ISO6709 = "GpsIso6709"
    MAJOR_BRAND = "MajorBrand"


MetadataMap = Mapping[MetaAttribute, str]
EMPTY_METADATA: MetadataMap = MappingProxyType({})


def metadata_map(values: Mapping[MetaAttribute, str]) -> MetadataMap:
    """Read-only metadata map with empty values dropped."""
    return MappingProxyType({k: v for k, v in values.items() if v})


Hash = NewType("Hash", str)


@dataclass(frozen=True)
class HashedName:
    hash: Hash
    extension: str  # lowercase, leading dot

    @property
    def value(self) -> str:
        return f"{self.hash}{self.extension}"


@dataclass(frozen=True)
class NormalName:
    raw: str

    @property
    def value(self) -> str:
        return self.raw


FileName = Union[HashedName, NormalName]

MetadataSource = Callable[["MediaFile"], MetadataMap]


@dataclass(frozen=True)
class MediaFile:
    """
    An image or video found on disk.

    Metadata is not read at construction time; `metadata` asks the attached
    source, which is expected to memoize per path (see MetadataLoader).
    """
    kind: FileKind
    path: Path
    name: FileName
    source: Optional[MetadataSource] = field(default=None, compare=False, repr=False)
    cached_hash: Optional[Hash] = None

    @property
    def original_name(self) -> str:
        return self.path.name

    @property
    def is_hashed(self) -> bool:
        return isinstance(self.name, HashedName)

    @property
    def metadata(self) -> MetadataMap:
        if self.source is None:
            return EMPTY_METADATA
        return self.source(self)


@dataclass(frozen=True)
class RenameFile:
    original: MediaFile
    renamed: MediaFile

    @property
    def target(self) -> Path:
        return self.renamed.path


# --- Resolved actions (executed by organization.mover.FileMover) ---

@dataclass(frozen=True)
class RenameAction:
    rename: RenameFile

    @property
    def source(self) -> Path:
        return self.rename.original.path

    @property
    def target(self) -> Path:
        return self.rename.target


@dataclass(frozen=True)
class MoveAction:
    """Same hash, different bytes: segregate into a subdirectory named after the hash."""
    hash: Hash
    rename: RenameFile
    target: Path

    @property
    def source(self) -> Path:
        return self.rename.original.path


@dataclass(frozen=True)
class RemoveAction:
    file: MediaFile
    duplicate_of: Path

    @property
    def source(self) -> Path:
        return self.file.path


@dataclass(frozen=True)
class KeepUnchanged:
    file: MediaFile

    @property
    def source(self) -> Path:
        return self.file.path


Action = Union[RenameAction, MoveAction, RemoveAction, KeepUnchanged]


@dataclass
class Resolution:
    """Output of DuplicateResolver for a batch of rename candidates."""
    to_rename: List[RenameFile] = field(default_factory=list)
    to_remove: List[RemoveAction] = field(default_factory=list)
    to_move: List[MoveAction] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)


@dataclass
class RenamePlan:
    renames: List[RenameAction] = field(default_factory=list)
    moves: List[MoveAction] = field(default_factory=list)
    removes: List[RemoveAction] = field(default_factory=list)
    kept: List[KeepUnchanged] = field(default_factory=list)
    skipped: List[MediaFile] = field(default_factory=list)
    no_metadata: List[MediaFile] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)

    @property
    def actions(self) -> List[Action]:
        return [*self.renames, *self.moves, *self.removes]


@dataclass
class RunSummary:
    renamed: int = 0
    copied: int = 0
    removed: int = 0
    moved: int = 0
    skipped: int = 0
    failed: int = 0
    errors: List[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


ImageHash = Tuple[int, ...]


# --- Run options (filled from the CLI, see main.py) ---

class TargetDirMode(Enum):
    EXCLUDE = "exclude"      # files already in the target are not copied again
    OVERRIDE = "override"    # target is not excluded, existing files are overwritten
    DRY_RUN = "dry-run"      # nothing is written


@dataclass
class RenameOptions:
    dry_run: bool = False
    rehash: bool = False
    create_subdirs: bool = False
    root_dir: Optional[Path] = None
    fallback: Optional[str] = None
    use_cache: bool = False


@dataclass
class PrepareOptions:
    sources: List[Path]
    target: Path
    exclude: List[Path] = field(default_factory=list)
    exclude_list: Optional[Path] = None
    mode: TargetDirMode = TargetDirMode.EXCLUDE
    by_year: bool = False
    by_month: bool = False
    fallback: Optional[str] = None
    use_cache: bool = False
    only_month: Optional[Tuple[int, int]] = None
