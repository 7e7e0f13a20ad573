"""
Reader for Anki .apkg packages.

An .apkg is a zip archive holding the collection database, a `media` JSON
file mapping numeric entry names to original filenames, and the media files
themselves under those numeric names.
"""

import io
import json
import logging
import zipfile
import zlib

from ankiport.models.failure import ImportErrorCode, KnownError, StructuralImportError

logger = logging.getLogger(__name__)

APKG_EXTENSION = ".apkg"

# Newest schema first
COLLECTION_ENTRY_NAMES = ("collection.anki21", "collection.anki22", "collection.anki2")

MEDIA_MAP_ENTRY = "media"


def validate_upload(filename: str | None, data: bytes | None) -> tuple[str, bytes]:
    """
    Reject uploads that are obviously not an Anki package.

    Returns:
        The validated (filename, data)

    Raises:
        KnownError: NO_FILE if nothing was uploaded, INVALID_FILE_TYPE if
            the filename does not end in .apkg
    """
    if not data or not filename:
        raise KnownError(ImportErrorCode.NO_FILE, "No file provided")
    if not filename.lower().endswith(APKG_EXTENSION):
        raise KnownError(
            ImportErrorCode.INVALID_FILE_TYPE,
            "File must be .apkg",
            detail=f"Received filename: {filename}",
        )
    return filename, data


class ApkgArchive:
    """An opened, validated .apkg archive held in memory."""

    def __init__(self, zip_file: zipfile.ZipFile):
        self._zip = zip_file
        self._names = [info.filename for info in zip_file.infolist() if not info.is_dir()]

    @property
    def entry_names(self) -> list[str]:
        """Names of all file entries, in archive order."""
        return list(self._names)

    def has_entry(self, name: str) -> bool:
        return name in self._names

    def read(self, name: str) -> bytes:
        """Read one entry's bytes."""
        return self._zip.read(name)

    def collection_entry(self) -> str:
        """
        Locate the embedded collection database.

        Tries the known entry names, newest schema first.

        Raises:
            StructuralImportError: NO_COLLECTION_FOUND listing every entry
        """
        for candidate in COLLECTION_ENTRY_NAMES:
            if self.has_entry(candidate):
                logger.info("Using collection file: %s", candidate)
                return candidate

        raise StructuralImportError(
            ImportErrorCode.NO_COLLECTION_FOUND,
            "Invalid .apkg file: no collection file found.",
            detail=f"Files in archive: {', '.join(self._names)}",
        )

    def media_map(self) -> dict[str, str]:
        """
        Parse the numeric-name -> original-filename media map.

        A missing or malformed map is not fatal; it yields an empty dict.
        """
        if not self.has_entry(MEDIA_MAP_ENTRY):
            return {}

        try:
            raw = json.loads(self.read(MEDIA_MAP_ENTRY).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Failed to parse media mapping file: %s", e)
            return {}

        if not isinstance(raw, dict):
            logger.warning("Media mapping is not an object, ignoring")
            return {}

        media = {str(k): v for k, v in raw.items() if isinstance(v, str) and v}
        logger.info("Parsed media mapping: %d entries", len(media))
        return media

    def close(self) -> None:
        self._zip.close()


def open_archive(data: bytes) -> ApkgArchive:
    """
    Open an .apkg from raw bytes.

    The whole central directory is parsed and every entry's CRC is checked
    before anything is extracted.

    Raises:
        StructuralImportError: ARCHIVE_INVALID if the bytes are not a
            readable zip archive
    """
    try:
        zip_file = zipfile.ZipFile(io.BytesIO(data))
    except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as e:
        raise StructuralImportError(
            ImportErrorCode.ARCHIVE_INVALID,
            "The uploaded file is not a valid .apkg archive.",
            detail=str(e),
        ) from e

    try:
        bad_entry = zip_file.testzip()
    except (zipfile.BadZipFile, zlib.error, OSError, EOFError, NotImplementedError) as e:
        zip_file.close()
        raise StructuralImportError(
            ImportErrorCode.ARCHIVE_INVALID,
            "The uploaded file is not a valid .apkg archive.",
            detail=str(e),
        ) from e

    if bad_entry is not None:
        zip_file.close()
        raise StructuralImportError(
            ImportErrorCode.ARCHIVE_INVALID,
            "The uploaded file is not a valid .apkg archive.",
            detail=f"Corrupt archive entry: {bad_entry}",
        )

    archive = ApkgArchive(zip_file)
    logger.info("Files in .apkg: %s", archive.entry_names)
    return archive
