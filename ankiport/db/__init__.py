from ankiport.db.database import get_session, get_session_factory, init_db
from ankiport.db.operations import (
    create_deck,
    create_import_record,
    find_deck,
    get_import_record,
    get_or_create_deck,
    insert_cards,
    update_import_record,
)

__all__ = [
    "create_deck",
    "create_import_record",
    "find_deck",
    "get_import_record",
    "get_or_create_deck",
    "get_session",
    "get_session_factory",
    "init_db",
    "insert_cards",
    "update_import_record",
]
