from ankiport.parsers.apkg import (
    COLLECTION_ENTRY_NAMES,
    ApkgArchive,
    open_archive,
    validate_upload,
)
from ankiport.parsers.collection_db import AnkiCollection, open_collection

__all__ = [
    "COLLECTION_ENTRY_NAMES",
    "AnkiCollection",
    "ApkgArchive",
    "open_archive",
    "open_collection",
    "validate_upload",
]
