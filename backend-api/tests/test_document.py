"""Character document tests (migration, references)."""

from __future__ import annotations

import pytest

from charsheet.client import document as doc_mod
from charsheet.client.document import (
    EQUIPPED_SLOTS,
    MAX_HIGHLIGHTS,
    SCHEMA_VERSION,
    default_document,
    migrate,
)
from charsheet.client.errors import DocumentError


class TestMigrate:
    def test_none_gives_defaults(self):
        doc = migrate(None)

        assert doc["schemaVersion"] == SCHEMA_VERSION
        assert doc["name"] == "New Character"
        assert doc["domainVault"]["equippedCards"] == [None] * EQUIPPED_SLOTS

    def test_v1_document_is_upgraded(self):
        raw = {
            "name": "Old",
            "domainVault": {"domainCards": [{"id": "c1"}], "equippedCards": ["c1"]},
            "effectsFeatures": {"features": [{"id": "f1"}]},
        }

        doc = migrate(raw)

        assert doc["domainVault"]["cards"] == [{"id": "c1"}]
        assert "domainCards" not in doc["domainVault"]
        assert doc["domainVault"]["equippedCards"] == ["c1", None, None, None, None]
        assert doc["effectsFeatures"]["cards"] == [{"id": "f1"}]
        assert doc["effectsFeatures"]["highlightedCards"] == []
        assert raw["domainVault"].get("domainCards") == [{"id": "c1"}]

    def test_unknown_keys_survive(self):
        doc = migrate({"schemaVersion": 2, "homebrew": {"x": 1}})

        assert doc["homebrew"] == {"x": 1}

    def test_existing_values_are_kept(self):
        doc = migrate({"schemaVersion": 3, "level": 9, "hope": {"current": 2}})

        assert doc["level"] == 9
        assert doc["hope"] == {"current": 2, "max": 6}

    def test_newer_version_is_rejected(self):
        with pytest.raises(DocumentError):
            migrate({"schemaVersion": SCHEMA_VERSION + 1})

    def test_non_object_is_rejected(self):
        with pytest.raises(DocumentError):
            migrate(["not", "a", "dict"])

    def test_partial_merge_does_not_fill(self):
        doc = migrate({"schemaVersion": 3, "name": "Only"}, fill_defaults=False)

        assert doc == {"schemaVersion": 3, "name": "Only"}


class TestReferences:
    def test_removing_equipped_card_clears_slot(self):
        doc = default_document()
        card = doc_mod.add_domain_card(doc, {"name": "Blade"})
        doc_mod.equip_card(doc, card["id"], 2)

        assert doc_mod.remove_domain_card(doc, card["id"]) is True
        assert card["id"] not in doc["domainVault"]["equippedCards"]

    def test_removing_unknown_card_does_not_raise(self):
        doc = default_document()

        assert doc_mod.remove_domain_card(doc, "missing") is False
        assert doc_mod.remove_feature_card(doc, "missing") is False
        assert doc_mod.remove_project(doc, "missing") is False

    def test_equip_moves_card_between_slots(self):
        doc = default_document()
        card = doc_mod.add_domain_card(doc, {"name": "Ward"})
        doc_mod.equip_card(doc, card["id"], 0)
        doc_mod.equip_card(doc, card["id"], 4)

        assert doc["domainVault"]["equippedCards"] == [None, None, None, None, card["id"]]

    def test_highlight_limit(self):
        doc = default_document()
        ids = [doc_mod.add_feature_card(doc, {"name": f"F{i}"})["id"] for i in range(MAX_HIGHLIGHTS + 1)]
        for card_id in ids[:MAX_HIGHLIGHTS]:
            assert doc_mod.toggle_highlight(doc, card_id) is True

        with pytest.raises(DocumentError):
            doc_mod.toggle_highlight(doc, ids[-1])
        assert doc_mod.toggle_highlight(doc, ids[0]) is False

    def test_removing_highlighted_feature(self):
        doc = default_document()
        card = doc_mod.add_feature_card(doc, {"name": "Glow"})
        doc_mod.toggle_highlight(doc, card["id"])

        doc_mod.remove_feature_card(doc, card["id"])

        assert doc["effectsFeatures"]["highlightedCards"] == []

    def test_repair_drops_dangling_ids(self):
        doc = default_document()
        doc["domainVault"]["equippedCards"] = ["ghost", None]
        doc["effectsFeatures"]["highlightedCards"] = ["ghost"]

        doc_mod.repair_references(doc)

        assert doc["domainVault"]["equippedCards"] == [None] * EQUIPPED_SLOTS
        assert doc["effectsFeatures"]["highlightedCards"] == []


class TestProjects:
    def test_segments_and_progress_are_clamped(self):
        doc = default_document()
        project = doc_mod.add_project(doc, "Forge", 40)

        doc_mod.advance_project(doc, project["id"], 100)

        assert project["segments"] == 12
        assert project["progress"] == 12

    def test_unknown_project(self):
        with pytest.raises(DocumentError):
            doc_mod.advance_project(default_document(), "missing")
