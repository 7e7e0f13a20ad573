from ankiport.services.anki_import import AnkiImporter, ImportOutcome, ProgressTracker
from ankiport.services.deck_hierarchy import DeckHierarchyResolver, parse_deck_name
from ankiport.services.storage import MediaStorage, StorageError, SupabaseStorage

__all__ = [
    "AnkiImporter",
    "DeckHierarchyResolver",
    "ImportOutcome",
    "MediaStorage",
    "ProgressTracker",
    "StorageError",
    "SupabaseStorage",
    "parse_deck_name",
]
