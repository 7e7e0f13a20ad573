"""
Deck hierarchy reconciliation.

Anki stores nested decks as a single "::"-joined name. Each path segment
becomes one destination deck, created top-down and reused when a deck with
the same owner, name and parent already exists. A per-import cache keyed by
the cumulative path guarantees one lookup/creation per distinct path.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ankiport.config import DEFAULT_ANKI_DECK_ID
from ankiport.db.operations import get_or_create_deck
from ankiport.models.anki import CollectionMeta

logger = logging.getLogger(__name__)

DECK_SEPARATOR = "::"


def parse_deck_name(name: str) -> list[str]:
    """
    Split an Anki deck name into path segments.

    "Parent::Child::Grandchild" -> ["Parent", "Child", "Grandchild"]
    Whitespace around segments is trimmed and empty segments dropped.
    """
    return [part.strip() for part in name.split(DECK_SEPARATOR) if part.strip()]


class DeckHierarchyResolver:
    """Creates or reuses destination decks for one import."""

    def __init__(self, session: AsyncSession, owner_id: str):
        self._session = session
        self._owner_id = owner_id
        self._cache: dict[str, int] = {}
        self.created_count = 0

    @property
    def path_count(self) -> int:
        """Number of distinct paths resolved so far."""
        return len(self._cache)

    async def resolve(self, segments: list[str]) -> int | None:
        """
        Resolve a deck path to the id of its leaf deck.

        Returns None for an empty path.
        """
        parent_id: int | None = None

        for depth, name in enumerate(segments):
            full_path = DECK_SEPARATOR.join(segments[: depth + 1])

            cached = self._cache.get(full_path)
            if cached is not None:
                parent_id = cached
                continue

            deck, created = await get_or_create_deck(self._session, self._owner_id, name, parent_id)
            if created:
                self.created_count += 1
            self._cache[full_path] = deck.id
            parent_id = deck.id

        return parent_id

    async def resolve_all(self, meta: CollectionMeta) -> dict[int, int]:
        """
        Resolve every deck of a collection.

        The Anki default deck is skipped; its cards are never imported.

        Returns:
            Dict mapping source deck id to destination deck id.
        """
        mapping: dict[int, int] = {}

        for source_id, name in meta.deck_names().items():
            if source_id == DEFAULT_ANKI_DECK_ID:
                logger.info("Skipping Anki default deck %s (%r)", source_id, name)
                continue

            segments = parse_deck_name(name)
            if not segments:
                logger.warning("Deck %s has an empty name, skipping", source_id)
                continue

            deck_id = await self.resolve(segments)
            if deck_id is not None:
                mapping[source_id] = deck_id

        logger.info(
            "Deck hierarchy resolved: %d paths, %d decks created",
            self.path_count,
            self.created_count,
        )
        return mapping
