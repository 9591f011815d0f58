"""In-memory zip handling for uploaded projects and liberated archives.

This module decodes uploaded zip containers into a file map and re-encodes
cleaned file maps, including zip bomb detection and path traversal
prevention on the way in.
"""

import base64
import binascii
import io
import logging
import posixpath
import time
import zipfile
import zlib

from .exceptions import (
    ArchiveDecodeError,
    ArchiveEncodeError,
    InvalidInputError,
    ZipSecurityError,
)

logger = logging.getLogger(__name__)

# Ordered mapping of relative path -> text (UTF-8 decodable) or raw bytes
FileMap = dict[str, str | bytes]

ARCHIVE_SUFFIX = "-liberated"
EXECUTABLE_SUFFIXES = (".sh",)


def archive_root(project_name: str) -> str:
    """Top-level folder every path of the output archive is nested under."""
    return f"{project_name}{ARCHIVE_SUFFIX}"


def archive_filename(project_name: str) -> str:
    return f"{archive_root(project_name)}.zip"


def decode_base64_archive(payload: str) -> bytes:
    """Decode a base64 upload, tolerating a data URL prefix.

    Raises:
        InvalidInputError: If the payload is empty or not valid base64
    """
    if not payload or not payload.strip():
        raise InvalidInputError("Archive payload is empty")
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        data = base64.b64decode(payload)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputError(f"Invalid base64 content: {e}") from e
    if not data:
        raise InvalidInputError("Archive payload is empty")
    return data


class ZipBombDetector:
    """Detects potential zip bombs and suspicious zip files.

    Uses conservative thresholds to prevent zip bomb attacks while still
    allowing ordinary web projects through.
    """

    MAX_COMPRESSION_RATIO = 100  # Source text compresses well, stay generous
    MAX_FILES = 5000
    MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB per file
    MAX_PATH_LENGTH = 260
    MAX_CUMULATIVE_SIZE = 200 * 1024 * 1024  # 200MB cumulative extracted size

    def validate(self, zf: zipfile.ZipFile) -> None:
        """Validate the structure of an open zip file.

        Raises:
            ZipSecurityError: If structure violates security constraints
        """
        file_list = zf.infolist()

        if len(file_list) > self.MAX_FILES:
            raise ZipSecurityError(f"Too many files in zip: {len(file_list)} > {self.MAX_FILES}")

        total_compressed = 0
        total_uncompressed = 0

        for info in file_list:
            if self.is_path_traversal(info.filename):
                raise ZipSecurityError(f"Path traversal detected: {info.filename}")

            if len(info.filename) > self.MAX_PATH_LENGTH:
                raise ZipSecurityError(f"Path too long: {len(info.filename)} > {self.MAX_PATH_LENGTH}")

            if info.file_size > self.MAX_FILE_SIZE:
                raise ZipSecurityError(f"File too large: {info.filename} ({info.file_size} bytes)")

            total_compressed += info.compress_size
            total_uncompressed += info.file_size

        # Tiny archives legitimately have high ratios, only check meaningful sizes
        if total_compressed > 0 and total_uncompressed > 1024 * 1024:
            compression_ratio = total_uncompressed / total_compressed
            if compression_ratio > self.MAX_COMPRESSION_RATIO:
                raise ZipSecurityError(
                    f"Suspicious compression ratio: {compression_ratio:.1f}:1 > {self.MAX_COMPRESSION_RATIO}:1"
                )

        if total_uncompressed > self.MAX_CUMULATIVE_SIZE:
            raise ZipSecurityError(
                f"Cumulative extracted size too large: {total_uncompressed} > {self.MAX_CUMULATIVE_SIZE}"
            )

    @staticmethod
    def is_path_traversal(filename: str) -> bool:
        normalized = posixpath.normpath(filename.replace("\\", "/"))
        return (
            normalized == ".."
            or normalized.startswith("../")
            or "/../" in normalized
            or normalized.startswith("/")
            or ":" in normalized  # Windows drive letters
        )


class ArchiveCodec:
    """Decodes uploaded zip bytes to a file map and encodes file maps back."""

    def __init__(self, max_archive_bytes: int = 50 * 1024 * 1024, detector: ZipBombDetector | None = None):
        """Initialize the codec.

        Args:
            max_archive_bytes: Largest accepted compressed upload
            detector: Safety validator applied before any entry is read
        """
        self.max_archive_bytes = max_archive_bytes
        self.detector = detector or ZipBombDetector()

    def decode(self, data: bytes, strip_prefix: str | None = None) -> FileMap:
        """Decode a zip container into a file map.

        Directory entries are skipped. Entries that are valid UTF-8 become
        text, everything else stays as bytes. Two entries that normalize to
        the same path are rejected rather than merged.

        Args:
            data: Raw zip bytes
            strip_prefix: Optional top-level folder removed from every path

        Raises:
            ArchiveDecodeError: If the bytes are not a readable zip container or
                two entries resolve to the same path
            ZipSecurityError: If the container violates a safety limit
        """
        if not data:
            raise ArchiveDecodeError("Archive is empty")
        if len(data) > self.max_archive_bytes:
            raise ZipSecurityError(f"Zip file too large: {len(data)} > {self.max_archive_bytes}")

        file_map: FileMap = {}
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                self.detector.validate(zf)
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    path = self._relative_path(info.filename, strip_prefix)
                    if not path:
                        continue
                    if path in file_map:
                        raise ArchiveDecodeError(f"Duplicate archive entry: {info.filename} (resolves to {path})")
                    raw = zf.read(info)
                    try:
                        file_map[path] = raw.decode("utf-8")
                    except UnicodeDecodeError:
                        file_map[path] = raw
        except zipfile.BadZipFile as e:
            raise ArchiveDecodeError(f"Invalid or corrupted zip archive: {e}") from e
        except (zlib.error, EOFError, NotImplementedError) as e:
            raise ArchiveDecodeError(f"Unreadable zip entry: {e}") from e

        logger.debug(f"Decoded archive with {len(file_map)} files")
        return file_map

    def encode(self, file_map: FileMap, root_prefix: str | None = None) -> bytes:
        """Encode a file map as a deflate-compressed zip.

        Args:
            file_map: Files to pack
            root_prefix: Optional folder every path is nested under

        Raises:
            ArchiveEncodeError: If the archive cannot be written
        """
        buffer = io.BytesIO()
        date_time = time.localtime()[:6]
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                for path, content in file_map.items():
                    clean_path = path.replace("\\", "/").lstrip("/")
                    if not clean_path:
                        raise ArchiveEncodeError(f"Invalid archive path: {path!r}")
                    arcname = f"{root_prefix}/{clean_path}" if root_prefix else clean_path
                    info = zipfile.ZipInfo(arcname, date_time=date_time)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    mode = 0o755 if clean_path.endswith(EXECUTABLE_SUFFIXES) else 0o644
                    info.external_attr = mode << 16
                    zf.writestr(info, content)
        except ArchiveEncodeError:
            raise
        except (OSError, ValueError, TypeError, zipfile.LargeZipFile) as e:
            raise ArchiveEncodeError(f"Failed to build archive: {e}") from e
        return buffer.getvalue()

    @staticmethod
    def _relative_path(filename: str, strip_prefix: str | None) -> str:
        path = filename.replace("\\", "/")
        if strip_prefix:
            prefix = strip_prefix.rstrip("/") + "/"
            if path.startswith(prefix):
                path = path[len(prefix):]
        return posixpath.normpath(path) if path else path


_default_codec = ArchiveCodec()


def decode(data: bytes, strip_prefix: str | None = None) -> FileMap:
    """Decode with the default codec limits."""
    return _default_codec.decode(data, strip_prefix)


def encode(file_map: FileMap, root_prefix: str | None = None) -> bytes:
    """Encode with the default codec."""
    return _default_codec.encode(file_map, root_prefix)
