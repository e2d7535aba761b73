"""
Configuration constants for the media organizer.
"""
from pathlib import Path

# --- File Type Definitions ---
IMAGE_EXTS = {'.gif', '.jpg', '.jpeg', '.png', '.bmp', '.heic'}
VIDEO_EXTS = {
    '.webm', '.mkv', '.flv', '.vob', '.ogb', '.ogg', '.drc', '.gifv', '.mng', '.avi',
    '.mts', '.m2ts', '.ts', '.mov', '.qt', '.wmv', '.yuv', '.rm', '.rmvb', '.viv',
    '.asf', '.amv', '.mp4', '.m4p', '.m4v', '.mpg', '.mp2', '.mpeg', '.m2v', '.svi',
    '.3gp', '.3g2', '.mxf', '.roq', '.nsv', '.f4v', '.f4p', '.f4a', '.f4b',
}

# --- Metadata Parsing ---
EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

# exifread tag name -> attribute name (see models.MetaAttribute)
IMAGE_TAGS = {
    'EXIF DateTimeOriginal': 'CreatedAt',
    'Image Model': 'Model',
    'GPS GPSLatitude': 'GpsLatitude',
    'GPS GPSLongitude': 'GpsLongitude',
    'GPS GPSAltitude': 'GpsAltitude',
}

# --- Hashing ---
IMAGE_PREFIX = "i"
VIDEO_PREFIX = "v"
HASH_DATE_FORMAT = "%Y%m%dT%H%M%S"
HASH_ILLEGAL_CHARS = ['/', '\\', '?', '%', '*', ':', '|', '"', '<', '>', '.', ',', ';', '=']

# --- Perceptual Hashing ---
THUMBNAIL_WIDTH = 32
DEFAULT_SIMILARITY = 90.0

# --- Performance ---
DEFAULT_WORKERS = 8
CACHE_LOCK_STRIPES = 64

# --- Hash Cache ---
CACHE_DB_PATH = Path.home() / ".media-organizer" / "hash-cache.db"

# --- Organization ---
YEAR_PATTERN = r'^\d{4}$'
MONTH_PATTERN = r'^\d{2}$'
FOLDER_PATTERN = "{year}/{month:02d}"
LOG_FILE_NAME = "media-organizer.log"
