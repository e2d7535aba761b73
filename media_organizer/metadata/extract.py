import logging
import subprocess
import json
import threading
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Optional

import exifread

from .. import config
from ..exceptions import MetadataExtractionError
from ..models import EMPTY_METADATA, FileKind, MediaFile, MetaAttribute, MetadataMap, metadata_map

# Type hint 'Any' prevents Pylance from complaining about "None" having no attribute "parse"
MediaInfo: Any = None
try:
    from pymediainfo import MediaInfo
except ImportError:
    MediaInfo = None


class MetadataExtractor:
    """
    Unified interface for extracting metadata from media files.

    Tags are translated once, here, into the MetaAttribute set. Unsupported
    or broken files yield an empty map and a warning; they never raise.

    Strategies:
      - Images: Uses 'exifread' (fast, Python-native).
      - Video: Uses 'pymediainfo' (fast wrapper) -> falls back to 'exiftool' (robust).
    """

    def extract(self, kind: FileKind, path: Path) -> MetadataMap:
        if kind is FileKind.VIDEO:
            return self.get_video_metadata(path)
        return self.get_image_metadata(path)

    def get_image_metadata(self, path: Path) -> MetadataMap:
        try:
            tags = self._read_exif(path)
        except MetadataExtractionError as e:
            logging.warning(str(e))
            return EMPTY_METADATA

        values: Dict[MetaAttribute, str] = {}
        for tag_name, attr_name in config.IMAGE_TAGS.items():
            if tag_name not in tags:
                continue
            value = str(tags[tag_name]).strip()
            attr = MetaAttribute(attr_name)
            if attr is MetaAttribute.CREATED_AT:
                dt = self._parse_flexible_date(value)
                if dt is None:
                    logging.warning(f"File {path} has unparsable date {value!r}.")
                    continue
                value = dt.strftime(config.EXIF_DATE_FORMAT)
            values[attr] = value

        return metadata_map(values)

    def get_video_metadata(self, path: Path) -> MetadataMap:
        # Strategy 1: Try MediaInfo (Fastest, usually sufficient)
        if MediaInfo is not None:
            try:
                data = self._extract_mediainfo(path)
                if data:
                    return metadata_map(data)
            except Exception as e:
                logging.debug(f"MediaInfo failed for {path}: {e}")

        # Strategy 2: Try ExifTool (Robust fallback, requires system install)
        try:
            data = self._extract_exiftool(path)
            if data:
                return metadata_map(data)
        except (OSError, subprocess.CalledProcessError, ValueError) as e:
            # Only log at debug level to avoid spamming console if tool is missing
            logging.debug(f"ExifTool failed for {path}: {e}")

        return EMPTY_METADATA

    # --- Internal Extraction Helpers ---

    def _read_exif(self, path: Path) -> dict:
        try:
            with path.open('rb') as f:
                # details=False speeds up processing significantly
                return exifread.process_file(f, details=False)
        except Exception as e:
            raise MetadataExtractionError(f"File {path} could not be parsed due to {e}.") from e

    def _extract_mediainfo(self, path: Path) -> Dict[MetaAttribute, str]:
        """Parses video using pymediainfo."""
        mi = MediaInfo.parse(str(path))
        data: Dict[MetaAttribute, str] = {}

        for track in mi.tracks:
            if track.track_type != "General":
                continue

            # Vendor specific tags first, they carry the local capture time
            date_candidates = [
                "comapplequicktimecreationdate",
                "recorded_date",
                "encoded_date",
                "tagged_date",
            ]
            for field in date_candidates:
                val = getattr(track, field, None)
                if val:
                    dt = self._parse_flexible_date(str(val))
                    if dt:
                        data[MetaAttribute.CREATED_AT] = dt.strftime(config.EXIF_DATE_FORMAT)
                        break

            model = (
                getattr(track, "comapplequicktimemodel", None) or
                getattr(track, "device_model", None) or
                getattr(track, "performer", None)
            )
            if model:
                data[MetaAttribute.MODEL] = str(model).strip()

            location = (
                getattr(track, "comapplequicktimelocationiso6709", None) or
                getattr(track, "xyz", None)
            )
            if location:
                data[MetaAttribute.GPS_ISO6709] = str(location).strip()

            brand = getattr(track, "codec_id", None)
            if brand:
                data[MetaAttribute.MAJOR_BRAND] = str(brand).strip()

        return data

    def _extract_exiftool(self, path: Path) -> Dict[MetaAttribute, str]:
        """
        Wraps the 'exiftool' command line utility.
        Must be installed and on the system PATH.
        """
        cmd = ["exiftool", "-j", str(path)]
        out = subprocess.check_output(cmd, stderr=subprocess.DEVNULL, text=True)
        data_list = json.loads(out)

        data: Dict[MetaAttribute, str] = {}
        if not data_list:
            return data

        tags = data_list[0]

        date_fields = ["CreationDate", "DateTimeOriginal", "CreateDate", "MediaCreateDate"]
        for field in date_fields:
            if tags.get(field):
                dt = self._parse_flexible_date(str(tags[field]))
                if dt:
                    data[MetaAttribute.CREATED_AT] = dt.strftime(config.EXIF_DATE_FORMAT)
                    break

        model = tags.get("Model") or tags.get("CameraModelName")
        if model:
            data[MetaAttribute.MODEL] = str(model).strip()

        for field, attr in (
            ("GPSLatitude", MetaAttribute.GPS_LATITUDE),
            ("GPSLongitude", MetaAttribute.GPS_LONGITUDE),
            ("GPSAltitude", MetaAttribute.GPS_ALTITUDE),
        ):
            if tags.get(field):
                data[attr] = str(tags[field]).strip()

        if tags.get("MajorBrand"):
            data[MetaAttribute.MAJOR_BRAND] = str(tags["MajorBrand"]).strip()

        return data

    def _parse_flexible_date(self, dt_str: str) -> Optional[datetime]:
        """
        Handles EXIF, ISO and MediaInfo/ExifTool date strings.
        Returns a naive datetime holding the recorded wall-clock time.
        """
        if not dt_str:
            return None

        clean = dt_str.replace("UTC", "").strip()
        if clean.endswith("Z"):
            clean = clean[:-1]

        # "YYYY:MM:DD ..." -> "YYYY-MM-DD ..." so both styles share one parser
        if len(clean) >= 10 and clean[4] == ':' and clean[7] == ':':
            clean = clean.replace(":", "-", 2)

        try:
            dt = datetime.fromisoformat(clean)
        except ValueError:
            # Sub-second precision or odd suffixes
            try:
                dt = datetime.strptime(clean[:19], "%Y-%m-%d %H:%M:%S")
            except ValueError:
                return None

        if dt.year < 1900:
            return None
        return dt.replace(tzinfo=None, microsecond=0)


class MetadataLoader:
    """
    Memoizes metadata per path so each file is read at most once per run,
    even when several pipeline stages ask for it concurrently.
    Usable directly as a MediaFile metadata source.
    """

    def __init__(self, extractor: Optional[MetadataExtractor] = None, stripes: int = config.CACHE_LOCK_STRIPES):
        self.extractor = extractor or MetadataExtractor()
        self._loaded: Dict[Path, MetadataMap] = {}
        self._locks = [threading.Lock() for _ in range(max(1, stripes))]

    def __call__(self, file: MediaFile) -> MetadataMap:
        lock = self._locks[hash(file.path) % len(self._locks)]
        with lock:
            cached = self._loaded.get(file.path)
            if cached is not None:
                return cached
            logging.debug(f"Loading metadata for {file.path}")
            metadata = self.extractor.extract(file.kind, file.path)
            self._loaded[file.path] = metadata
            return metadata
