"""
Unit tests for the content provider and card deck.
"""

import json

import pytest

from cardwise.core.errors import NotFoundError, ValidationError
from cardwise.delivery.content import (
    CardDeck,
    CardMetadata,
    ContentProvider,
    StaticContentProvider,
    select_card_ids,
)


class TestCardMetadata:
    def test_from_dict_with_id(self):
        meta = CardMetadata.from_dict(
            {"id": "c1", "tags": ["heart", "anatomy"], "structure_id": "aorta", "front": "Q"}
        )

        assert meta.card_id == "c1"
        assert meta.tags == ("heart", "anatomy")
        assert meta.structure_id == "aorta"
        assert meta.front == "Q"

    def test_from_dict_alternate_keys(self):
        meta = CardMetadata.from_dict({"card_id": 7, "tags": "lung", "structureId": "bronchus"})

        assert meta.card_id == "7"
        assert meta.tags == ("lung",)
        assert meta.structure_id == "bronchus"

    def test_from_dict_requires_id(self):
        with pytest.raises(KeyError):
            CardMetadata.from_dict({"tags": ["x"]})

    def test_matches(self):
        meta = CardMetadata("c1", tags=("heart", "lung"), structure_id="aorta")

        assert meta.matches()
        assert meta.matches(tags=["lung"])
        assert meta.matches(structure_ids=["aorta", "cortex"])
        assert meta.matches(tags=["heart"], structure_ids=["aorta"])
        assert not meta.matches(tags=["brain"])
        assert not meta.matches(tags=["heart"], structure_ids=["cortex"])


class TestCardDeck:
    def test_indexes(self, deck):
        assert len(deck) == 5
        assert "card-01" in deck
        assert deck.by_tag("heart") == ["card-01", "card-02", "card-04"]
        assert deck.by_structure("cortex") == ["card-05"]
        assert deck.tags == ["brain", "heart", "lung"]

    def test_replacing_a_card_reindexes(self, deck):
        deck.add(CardMetadata("card-05", tags=("lung",), structure_id="alveolus"))

        assert deck.by_tag("brain") == []
        assert "brain" not in deck.tags
        assert deck.by_tag("lung") == ["card-03", "card-04", "card-05"]
        assert deck.by_structure("cortex") == []
        assert len(deck) == 5

    def test_get_unknown_card(self, deck):
        with pytest.raises(NotFoundError):
            deck.get("card-99")

    def test_iterates_in_id_order(self, deck):
        assert [c.card_id for c in deck] == deck.card_ids()

    def test_is_a_content_provider(self, deck):
        assert isinstance(deck, ContentProvider)


class TestDeckLoading:
    def test_load_list(self, tmp_path):
        path = tmp_path / "deck.json"
        path.write_text(json.dumps([
            {"id": "a", "tags": ["x"]},
            {"id": "b", "structure_id": "s1"},
        ]))

        deck = CardDeck.load(path)

        assert deck.card_ids() == ["a", "b"]
        assert deck.by_structure("s1") == ["b"]

    def test_load_object_form_skips_invalid_cards(self, tmp_path):
        path = tmp_path / "deck.json"
        path.write_text(json.dumps({"cards": [{"id": "a"}, {"tags": ["no-id"]}, "junk"]}))

        deck = CardDeck.load(path)

        assert deck.card_ids() == ["a"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            CardDeck.load(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "deck.json"
        path.write_text("{not json")

        with pytest.raises(ValidationError):
            CardDeck.load(path)


class TestSelection:
    def test_no_filters_returns_everything(self, deck):
        assert select_card_ids(deck) == deck.card_ids()

    def test_tag_filter(self, deck):
        assert select_card_ids(deck, tags=["lung"]) == ["card-03", "card-04"]

    def test_tag_and_structure_filter(self, deck):
        assert select_card_ids(deck, tags=["heart"], structure_ids=["ventricle"]) == ["card-02"]

    def test_static_provider(self):
        provider = StaticContentProvider({
            "z": CardMetadata("z", tags=("t",)),
            "a": CardMetadata("a"),
        })

        assert isinstance(provider, ContentProvider)
        assert provider.card_ids() == ["a", "z"]
        assert select_card_ids(provider, tags=["t"]) == ["z"]
        assert provider.metadata("missing") is None
