"""
캐릭터 데이터 문서 (characters.character_data 에 저장되는 JSON)

문서는 순수 dict 로 다룬다. 저장된 문서는 schemaVersion 을 기준으로
마이그레이션 체인을 거쳐 현재 형태로 올라오며, 모르는 키는 버리지 않는다.
"""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging
import uuid

from .errors import DocumentError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3
EQUIPPED_SLOTS = 5
MAX_HIGHLIGHTS = 5
MIN_PROJECT_SEGMENTS = 1
MAX_PROJECT_SEGMENTS = 12

ATTRIBUTES = ("agility", "strength", "finesse", "instinct", "presence", "knowledge")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cells(count: int, active: bool) -> List[Dict[str, bool]]:
    return [{"active": active} for _ in range(count)]


_DEFAULT_DOCUMENT: Dict[str, Any] = {
    "schemaVersion": SCHEMA_VERSION,
    "name": "New Character",
    "subtitle": "Community Ancestry Class (Subclass)",
    "level": 5,
    "imageUrl": "",
    "domain1": "Domain 1",
    "domain2": "Domain 2",
    "characterInfo": {"community": "", "ancestry": "", "class": "", "subclass": ""},
    "attributes": {name: 0 for name in ATTRIBUTES},
    "evasion": 10,
    "damage": {"minor": 1, "major": 2},
    "hope": {"current": 0, "max": 6},
    "hp": {"circles": _cells(4, True), "current": 4, "max": 4},
    "stress": {"circles": _cells(4, False), "current": 0, "max": 4},
    "armor": {"circles": _cells(4, False), "current": 0, "max": 4, "activeCount": 0, "totalCircles": 4},
    "equipment": {
        "selectedBag": "Standard Backpack",
        "backpackType": "standard",
        "backpackEnabled": True,
        "items": [],
        "activeWeapons": [],
        "activeArmor": [],
        "gold": 0,
        "equipped": {},
    },
    "journal": {"entries": []},
    "details": {"personal": {}, "physical": {}},
    "experiences": [],
    "downtime": {"projects": []},
    "domainVault": {"cards": [], "equippedCards": [None] * EQUIPPED_SLOTS},
    "effectsFeatures": {"cards": [], "highlightedCards": []},
    "ui": {"sectionOrder": None, "colors": {}, "activeTab": "downtime-tab-content"},
    "appearanceSettings": {
        "theme": "dark",
        "accentColor": "#ffd700",
        "accentColorLight": None,
        "accentColorDark": None,
        "glassColor": "#ffffff",
        "glassOpacity": 10,
        "backgroundImage": None,
        "customColors": {},
    },
}


def default_document(**overrides: Any) -> Dict[str, Any]:
    """새 캐릭터 기본 문서 (매번 새 복사본)"""
    doc = deepcopy(_DEFAULT_DOCUMENT)
    now = _now_iso()
    doc["createdAt"] = now
    doc["lastModified"] = now
    doc.update(deepcopy(overrides))
    return doc


def _fill_missing(target: Dict[str, Any], defaults: Dict[str, Any]) -> None:
    # 있는 값은 건드리지 않고 빠진 키만 채운다
    for key, value in defaults.items():
        if key not in target:
            target[key] = deepcopy(value)
        elif isinstance(value, dict) and isinstance(target[key], dict):
            _fill_missing(target[key], value)


# --- 마이그레이션 체인 -------------------------------------------------------

def _v1_to_v2(doc: Dict[str, Any]) -> Dict[str, Any]:
    """domainCards/features 레거시 이름을 cards 로"""
    vault = doc.get("domainVault")
    if isinstance(vault, dict) and "domainCards" in vault:
        legacy = vault.pop("domainCards")
        if not vault.get("cards"):
            vault["cards"] = legacy or []
    effects = doc.get("effectsFeatures")
    if isinstance(effects, dict) and "features" in effects:
        legacy = effects.pop("features")
        if not effects.get("cards"):
            effects["cards"] = legacy or []
    return doc


def _v2_to_v3(doc: Dict[str, Any]) -> Dict[str, Any]:
    """장착 슬롯 5칸 고정 + highlightedCards 도입"""
    vault = doc.get("domainVault")
    if isinstance(vault, dict):
        slots = vault.get("equippedCards")
        if not isinstance(slots, list):
            slots = []
        vault["equippedCards"] = (list(slots) + [None] * EQUIPPED_SLOTS)[:EQUIPPED_SLOTS]
    effects = doc.get("effectsFeatures")
    if isinstance(effects, dict) and not isinstance(effects.get("highlightedCards"), list):
        effects["highlightedCards"] = []
    return doc


MIGRATIONS: Dict[int, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
}


def migrate(raw: Optional[Dict[str, Any]], fill_defaults: bool = True) -> Dict[str, Any]:
    """저장된 문서를 현재 스키마로 올린다. 원본은 수정하지 않는다.

    fill_defaults=False 면 형태 변환만 하고 빠진 키는 채우지 않는다
    (부분 문서를 기존 문서 위에 얹을 때)."""
    if raw is None:
        return default_document()
    if not isinstance(raw, dict):
        raise DocumentError(f"character document must be an object, got {type(raw).__name__}")

    doc = deepcopy(raw)
    version = doc.get("schemaVersion", 1)
    if not isinstance(version, int) or version < 1:
        raise DocumentError(f"invalid schemaVersion: {version!r}")
    if version > SCHEMA_VERSION:
        raise DocumentError(f"document schemaVersion {version} is newer than supported {SCHEMA_VERSION}")

    while version < SCHEMA_VERSION:
        doc = MIGRATIONS[version](doc)
        version += 1
        logger.debug(f"문서 마이그레이션 v{version - 1} → v{version}")

    doc["schemaVersion"] = SCHEMA_VERSION
    if fill_defaults:
        _fill_missing(doc, _DEFAULT_DOCUMENT)
        repair_references(doc)
    return doc


# --- 참조 무결성 -------------------------------------------------------------

def _card_ids(cards: Any) -> set:
    if not isinstance(cards, list):
        return set()
    return {card.get("id") for card in cards if isinstance(card, dict) and card.get("id") is not None}


def repair_references(doc: Dict[str, Any]) -> Dict[str, Any]:
    """슬롯/하이라이트의 끊어진 id 제거, 개수 제한 보정"""
    vault = doc.setdefault("domainVault", {})
    vault_ids = _card_ids(vault.setdefault("cards", []))
    slots = vault.get("equippedCards")
    if not isinstance(slots, list):
        slots = []
    slots = (list(slots) + [None] * EQUIPPED_SLOTS)[:EQUIPPED_SLOTS]
    vault["equippedCards"] = [slot if slot in vault_ids else None for slot in slots]

    effects = doc.setdefault("effectsFeatures", {})
    feature_ids = _card_ids(effects.setdefault("cards", []))
    highlighted: List[Any] = []
    for card_id in effects.get("highlightedCards") or []:
        if card_id in feature_ids and card_id not in highlighted:
            highlighted.append(card_id)
    effects["highlightedCards"] = highlighted[:MAX_HIGHLIGHTS]
    return doc


def touch(doc: Dict[str, Any]) -> None:
    doc["lastModified"] = _now_iso()


# --- 도메인 볼트 -------------------------------------------------------------

def add_domain_card(doc: Dict[str, Any], card: Dict[str, Any]) -> Dict[str, Any]:
    """도메인 카드 추가 (id 없으면 발급)"""
    card = dict(card)
    card.setdefault("id", uuid.uuid4().hex)
    card.setdefault("level", 1)
    card.setdefault("recallCost", 0)
    doc["domainVault"]["cards"].append(card)
    touch(doc)
    return card


def remove_domain_card(doc: Dict[str, Any], card_id: str) -> bool:
    """카드 삭제 + 장착 슬롯에서 제거. 없는 카드여도 예외 없이 False"""
    vault = doc["domainVault"]
    before = len(vault["cards"])
    vault["cards"] = [c for c in vault["cards"] if c.get("id") != card_id]
    vault["equippedCards"] = [None if slot == card_id else slot for slot in vault["equippedCards"]]
    removed = len(vault["cards"]) != before
    if removed:
        touch(doc)
    return removed


def equip_card(doc: Dict[str, Any], card_id: str, slot: int) -> None:
    vault = doc["domainVault"]
    if not 0 <= slot < EQUIPPED_SLOTS:
        raise DocumentError(f"slot must be between 0 and {EQUIPPED_SLOTS - 1}")
    if card_id not in _card_ids(vault["cards"]):
        raise DocumentError(f"unknown domain card: {card_id}")
    # 같은 카드를 두 슬롯에 장착하지 않는다
    vault["equippedCards"] = [None if s == card_id else s for s in vault["equippedCards"]]
    vault["equippedCards"][slot] = card_id
    touch(doc)


def unequip_card(doc: Dict[str, Any], slot: int) -> Optional[str]:
    vault = doc["domainVault"]
    if not 0 <= slot < EQUIPPED_SLOTS:
        raise DocumentError(f"slot must be between 0 and {EQUIPPED_SLOTS - 1}")
    previous = vault["equippedCards"][slot]
    vault["equippedCards"][slot] = None
    touch(doc)
    return previous


# --- 효과/특성 ---------------------------------------------------------------

def add_feature_card(doc: Dict[str, Any], card: Dict[str, Any]) -> Dict[str, Any]:
    card = dict(card)
    card.setdefault("id", uuid.uuid4().hex)
    card["tokens"] = [dict(t) for t in card.get("tokens") or []]
    doc["effectsFeatures"]["cards"].append(card)
    touch(doc)
    return card


def remove_feature_card(doc: Dict[str, Any], card_id: str) -> bool:
    """특성 카드 삭제 + 하이라이트 목록에서 제거"""
    effects = doc["effectsFeatures"]
    before = len(effects["cards"])
    effects["cards"] = [c for c in effects["cards"] if c.get("id") != card_id]
    effects["highlightedCards"] = [h for h in effects["highlightedCards"] if h != card_id]
    removed = len(effects["cards"]) != before
    if removed:
        touch(doc)
    return removed


def toggle_highlight(doc: Dict[str, Any], card_id: str) -> bool:
    """하이라이트 토글. 반환: 토글 후 하이라이트 여부"""
    effects = doc["effectsFeatures"]
    highlighted = effects["highlightedCards"]
    if card_id in highlighted:
        highlighted.remove(card_id)
        touch(doc)
        return False
    if card_id not in _card_ids(effects["cards"]):
        raise DocumentError(f"unknown feature card: {card_id}")
    if len(highlighted) >= MAX_HIGHLIGHTS:
        raise DocumentError(f"at most {MAX_HIGHLIGHTS} cards can be highlighted")
    highlighted.append(card_id)
    touch(doc)
    return True


# --- 저널 / 다운타임 ---------------------------------------------------------

def add_journal_entry(
    doc: Dict[str, Any],
    title: str,
    content: str,
    category: str = "personal",
    auto_generated: bool = False,
) -> Dict[str, Any]:
    entry = {
        "id": uuid.uuid4().hex,
        "title": title,
        "content": content,
        "category": category,
        "isAutoGenerated": auto_generated,
        "timestamp": _now_iso(),
    }
    doc["journal"]["entries"].append(entry)
    touch(doc)
    return entry


def add_project(doc: Dict[str, Any], name: str, segments: int) -> Dict[str, Any]:
    segments = max(MIN_PROJECT_SEGMENTS, min(MAX_PROJECT_SEGMENTS, int(segments)))
    project = {"id": uuid.uuid4().hex, "name": name, "segments": segments, "progress": 0}
    doc["downtime"]["projects"].append(project)
    touch(doc)
    return project


def advance_project(doc: Dict[str, Any], project_id: str, delta: int = 1) -> Dict[str, Any]:
    for project in doc["downtime"]["projects"]:
        if project.get("id") == project_id:
            project["progress"] = max(0, min(project["segments"], project.get("progress", 0) + delta))
            touch(doc)
            return project
    raise DocumentError(f"unknown project: {project_id}")


def remove_project(doc: Dict[str, Any], project_id: str) -> bool:
    projects = doc["downtime"]["projects"]
    remaining = [p for p in projects if p.get("id") != project_id]
    doc["downtime"]["projects"] = remaining
    removed = len(remaining) != len(projects)
    if removed:
        touch(doc)
    return removed
