"""
Content provider: card identifiers and the metadata used for filtering.

The scheduling core never renders cards. It only needs to know which card
ids exist and which tags / structure each one belongs to. Anything that
satisfies ContentProvider can feed the queue builder; CardDeck is the
bundled implementation, loaded from code or from a JSON file.

JSON deck format (either form):
    [{"id": "c1", "tags": ["heart"], "structure_id": "aorta", "front": "...", "back": "..."}]
    {"cards": [...]}
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from loguru import logger

from cardwise.core.errors import NotFoundError, ValidationError

# =============================================================================
# Card metadata
# =============================================================================


@dataclass(frozen=True)
class CardMetadata:
    """Filtering metadata for one card."""

    card_id: str
    tags: tuple[str, ...] = ()
    structure_id: str | None = None
    front: str = ""
    back: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> CardMetadata:
        """
        Create CardMetadata from a dictionary (JSON).

        Accepts either "id" or "card_id" for the identifier, and
        "structure_id" or "structureId" for the structure.
        """
        card_id = data.get("card_id") or data["id"]
        tags = data.get("tags") or []
        if isinstance(tags, str):
            tags = [tags]
        return cls(
            card_id=str(card_id),
            tags=tuple(str(t) for t in tags),
            structure_id=data.get("structure_id") or data.get("structureId"),
            front=data.get("front", ""),
            back=data.get("back", ""),
        )

    def matches(
        self,
        tags: Iterable[str] | None = None,
        structure_ids: Iterable[str] | None = None,
    ) -> bool:
        """True when the card carries any requested tag and any requested structure."""
        if tags:
            if not set(tags) & set(self.tags):
                return False
        if structure_ids:
            if self.structure_id not in set(structure_ids):
                return False
        return True


@runtime_checkable
class ContentProvider(Protocol):
    """Supplies card ids and their metadata."""

    def card_ids(self) -> list[str]: ...

    def metadata(self, card_id: str) -> CardMetadata | None: ...


def select_card_ids(
    provider: ContentProvider,
    tags: Iterable[str] | None = None,
    structure_ids: Iterable[str] | None = None,
) -> list[str]:
    """Card ids from the provider that pass the tag / structure filters, sorted."""
    tags = list(tags or [])
    structure_ids = list(structure_ids or [])
    if not tags and not structure_ids:
        return sorted(provider.card_ids())

    selected = []
    for card_id in provider.card_ids():
        meta = provider.metadata(card_id)
        if meta is not None and meta.matches(tags, structure_ids):
            selected.append(card_id)
    return sorted(selected)


# =============================================================================
# Card Deck
# =============================================================================


class CardDeck:
    """
    In-memory collection of card metadata.

    Features:
    - Loading from a JSON file
    - Indexing by tag and structure for filtering
    """

    def __init__(self, cards: Iterable[CardMetadata] = ()):
        self._cards: dict[str, CardMetadata] = {}
        self._by_tag: dict[str, list[str]] = {}
        self._by_structure: dict[str, list[str]] = {}
        for card in cards:
            self.add(card)

    def __len__(self) -> int:
        return len(self._cards)

    def __iter__(self) -> Iterator[CardMetadata]:
        return iter(self._cards[card_id] for card_id in sorted(self._cards))

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    @property
    def tags(self) -> list[str]:
        """All tags present in the deck."""
        return sorted(self._by_tag.keys())

    @property
    def structure_ids(self) -> list[str]:
        """All structure ids present in the deck."""
        return sorted(self._by_structure.keys())

    def add(self, card: CardMetadata) -> None:
        """Add or replace a card."""
        if card.card_id in self._cards:
            self._unindex(self._cards[card.card_id])
        self._cards[card.card_id] = card
        for tag in card.tags:
            self._by_tag.setdefault(tag, []).append(card.card_id)
        if card.structure_id:
            self._by_structure.setdefault(card.structure_id, []).append(card.card_id)

    def _unindex(self, card: CardMetadata) -> None:
        for tag in card.tags:
            self._by_tag[tag].remove(card.card_id)
            if not self._by_tag[tag]:
                del self._by_tag[tag]
        if card.structure_id:
            self._by_structure[card.structure_id].remove(card.card_id)
            if not self._by_structure[card.structure_id]:
                del self._by_structure[card.structure_id]

    def card_ids(self) -> list[str]:
        return sorted(self._cards)

    def metadata(self, card_id: str) -> CardMetadata | None:
        return self._cards.get(card_id)

    def get(self, card_id: str) -> CardMetadata:
        """
        Look up a card.

        Raises:
            NotFoundError: If the card is not in the deck
        """
        try:
            return self._cards[card_id]
        except KeyError:
            raise NotFoundError(f"Unknown card {card_id!r}", card_id=card_id) from None

    def by_tag(self, tag: str) -> list[str]:
        return sorted(self._by_tag.get(tag, []))

    def by_structure(self, structure_id: str) -> list[str]:
        return sorted(self._by_structure.get(structure_id, []))

    @classmethod
    def load(cls, path: Path | str) -> CardDeck:
        """
        Load a deck from a JSON file.

        Args:
            path: JSON file holding a list of cards or {"cards": [...]}

        Returns:
            CardDeck with every valid card

        Raises:
            NotFoundError: If the file does not exist
            ValidationError: If the file is not valid JSON
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise NotFoundError(f"Deck file not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid deck file {path}: {e}") from e

        cards_list = data if isinstance(data, list) else data.get("cards", [])
        deck = cls()
        skipped = 0

        for card_data in cards_list:
            try:
                deck.add(CardMetadata.from_dict(card_data))
            except (KeyError, TypeError, AttributeError) as e:
                skipped += 1
                logger.warning("Invalid card in {}: {}", path, e)

        logger.info("Deck loaded: {} cards from {} ({} skipped)", len(deck), path.name, skipped)
        return deck


@dataclass
class StaticContentProvider:
    """Provider over a plain mapping; handy when content lives elsewhere."""

    cards: dict[str, CardMetadata] = field(default_factory=dict)

    def card_ids(self) -> list[str]:
        return sorted(self.cards)

    def metadata(self, card_id: str) -> CardMetadata | None:
        return self.cards.get(card_id)
