import re
import zlib
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional, Tuple

from .. import config
from ..exceptions import NoMetadataError
from ..models import (
    FileKind, FileName, Hash, HashedName, MediaFile, MetaAttribute, MetadataMap,
    NormalName, RenameFile,
)

HASHED_NAME = re.compile(r'^(i|v)(_.*)(\.[^.]+)$')
HASH_CREATED = re.compile(r'^(i|v)_(\d{4})(\d{2})\d{2}T\d{6}_')
WHITESPACE = re.compile(r'\s+')
CONTROL_CHARS = re.compile(r'[\x00-\x1f]')


def parse_exif_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parses "YYYY:MM:DD HH:MM:SS". Anything else is treated as absent."""
    if not value:
        return None
    try:
        return datetime.strptime(value, config.EXIF_DATE_FORMAT)
    except ValueError:
        return None


def checksum(value: str) -> str:
    """CRC-32 of the string, lowercase hex without padding."""
    return format(zlib.crc32(value.encode('utf-8')) & 0xffffffff, 'x')


def strip_illegal_chars(value: str) -> str:
    for char in dict.fromkeys(config.HASH_ILLEGAL_CHARS):
        value = value.replace(char, '')
    return CONTROL_CHARS.sub('', value)


def gps_string(metadata: MetadataMap) -> Optional[str]:
    iso = metadata.get(MetaAttribute.GPS_ISO6709)
    if iso:
        return iso

    lat = metadata.get(MetaAttribute.GPS_LATITUDE)
    lon = metadata.get(MetaAttribute.GPS_LONGITUDE)
    alt = metadata.get(MetaAttribute.GPS_ALTITUDE)
    if lat and lon and alt:
        return f"{lat}--{lon}--{alt}"
    return None


def parse_file_name(name: str) -> FileName:
    """
    Recognizes names produced by a previous run, e.g. "i_20220401T141648_9afe0fba.jpeg".
    The prefix must agree with the extension (image prefix with an image extension).
    """
    m = HASHED_NAME.match(name)
    if m:
        prefix, body, ext = m.groups()
        kind = FileKind.from_prefix(prefix)
        if kind and kind.accepts(ext):
            return HashedName(Hash(f"{prefix}{body}"), ext.lower())
    return NormalName(name)


def file_name_value(name: FileName) -> str:
    return name.value


def hash_created(hash_value: Hash) -> Optional[Tuple[int, int]]:
    """Returns (year, month) encoded in a hash, if any."""
    m = HASH_CREATED.match(hash_value)
    if not m:
        return None
    return int(m.group(2)), int(m.group(3))


class HashEngine:
    """
    Derives the content identity ("Hash") of a media file from its metadata.

    The hash is a pure function of (kind, CreatedAt, Model, GPS). No file
    content is read here.

    Args:
        cache: Optional HashCache. When given, each path is hashed at most
               once and the result is reused across runs.
    """

    def __init__(self, cache=None):
        self.cache = cache

    def compute_hash(self, kind: FileKind, metadata: MetadataMap) -> Hash:
        clear_parts = [kind.prefix]
        created = parse_exif_datetime(metadata.get(MetaAttribute.CREATED_AT))
        if created:
            clear_parts.append(created.strftime(config.HASH_DATE_FORMAT))
        clear = "_".join(clear_parts)

        crypt_parts = []
        model = metadata.get(MetaAttribute.MODEL)
        if model:
            crypt_parts.append(WHITESPACE.sub('', model))
        gps = gps_string(metadata)
        if gps:
            crypt_parts.append(WHITESPACE.sub('', gps))
        crypted = checksum("_".join(crypt_parts))

        return Hash(strip_illegal_chars(f"{clear}_{crypted}"))

    def hash_file(self, file: MediaFile, rehash: bool = False) -> Hash:
        """
        Hash for a file, through the cache if one is attached. With `rehash`
        the cached value is ignored and replaced. Raises NoMetadataError.
        """
        if self.cache is None:
            return self._hash_from_metadata(file)
        if rehash:
            file_hash = self._hash_from_metadata(file)
            self.cache.set(file.path, file_hash)
            return file_hash
        return self.cache.get_or_compute(file.path, lambda: self._hash_from_metadata(file))

    def _hash_from_metadata(self, file: MediaFile) -> Hash:
        metadata = file.metadata
        if not metadata:
            raise NoMetadataError(file)
        return self.compute_hash(file.kind, metadata)

    def convert_to_hash(self, file: MediaFile, rehash: bool = False) -> Optional[Callable[[], RenameFile]]:
        """
        Returns the pending rename computation for a file, or None when the
        file already carries a hashed name (unless `rehash` is set).
        """
        if file.is_hashed and not rehash:
            return None
        return lambda: self._rename(file, rehash)

    def _rename(self, file: MediaFile, rehash: bool = False) -> RenameFile:
        file_hash = self.hash_file(file, rehash)
        ext = file.path.suffix.lower()
        name = HashedName(file_hash, ext)
        renamed = replace(file, path=file.path.with_name(name.value), name=name, cached_hash=file_hash)
        return RenameFile(original=file, renamed=renamed)
