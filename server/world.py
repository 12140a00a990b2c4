"""World model: typed entities over store documents plus a live read cache.

Documents in the store are loose dicts (authored content sometimes uses
camelCase keys, older players lack newer fields). Each entity's from_dict()
is the single place defaults and key aliases are applied; to_dict() writes the
canonical snake_case form back.

`World` subscribes to every collection and keeps typed copies in memory. It is
used for read-mostly lookups (templates, room layout, who is where) and may lag
the store by one commit; handlers that mutate state re-read the authoritative
document inside a transaction.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import constants as C
from dice_utils import roll
from document_store import DocumentStore, doc_path

logger = logging.getLogger(__name__)


def _pick(data: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present key; authored docs mix camelCase and snake_case."""
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return default


def _as_int(val: Any, default: int = 0) -> int:
    try:
        return int(val)
    except (TypeError, ValueError):
        return default


def _as_float(val: Any, default: float = 0.0) -> float:
    try:
        return float(val)
    except (TypeError, ValueError):
        return default


def _as_list(val: Any) -> list:
    if val is None:
        return []
    if isinstance(val, (list, tuple)):
        return list(val)
    if isinstance(val, (set, frozenset)):
        return sorted(val)
    return [val]


def _unique(seq: List[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for x in seq:
        if x not in seen:
            seen.add(x)
            out.append(x)
    return out


# =============================================================================
# Templates and rooms (authored content, read-only during play)
# =============================================================================

@dataclass
class SpawnSlot:
    monster_id: str
    respawn_seconds: int = C.DEFAULT_RESPAWN_SECONDS
    last_defeated_at: float = 0.0   # epoch seconds, 0 = never defeated

    def to_dict(self) -> dict:
        return {
            'monster_id': self.monster_id,
            'respawn_seconds': self.respawn_seconds,
            'last_defeated_at': self.last_defeated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "SpawnSlot":
        return SpawnSlot(
            monster_id=str(_pick(data, 'monster_id', 'monsterId', default='')),
            respawn_seconds=_as_int(_pick(data, 'respawn_seconds', 'respawnTime'), C.DEFAULT_RESPAWN_SECONDS),
            last_defeated_at=_as_float(_pick(data, 'last_defeated_at', 'lastDefeated'), 0.0),
        )


@dataclass
class Room:
    id: str
    name: str = ''
    description: str = ''
    exits: Dict[str, str] = field(default_factory=dict)     # direction -> room id
    items: List[str] = field(default_factory=list)          # item ids, ordered, unique
    npcs: List[str] = field(default_factory=list)           # npc ids
    monster_spawns: List[SpawnSlot] = field(default_factory=list)
    details: Dict[str, str] = field(default_factory=dict)   # keyword -> text

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'exits': dict(self.exits),
            'items': list(self.items),
            'npcs': list(self.npcs),
            'monster_spawns': [s.to_dict() for s in self.monster_spawns],
            'details': dict(self.details),
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "Room":
        rid = str(doc_id or data.get('id') or '')
        exits = {str(k).lower(): str(v) for k, v in (data.get('exits') or {}).items() if v}
        spawns = [SpawnSlot.from_dict(s) for s in _as_list(_pick(data, 'monster_spawns', 'monsterSpawns')) if isinstance(s, dict)]
        return Room(
            id=rid,
            name=str(data.get('name') or rid),
            description=str(data.get('description') or ''),
            exits=exits,
            items=_unique([str(i) for i in _as_list(data.get('items'))]),
            npcs=_unique([str(n) for n in _as_list(data.get('npcs'))]),
            monster_spawns=[s for s in spawns if s.monster_id],
            details={str(k): str(v) for k, v in (data.get('details') or {}).items()},
        )


@dataclass
class ItemTemplate:
    id: str
    name: str
    aliases: List[str] = field(default_factory=list)
    description: str = ''
    cost: int = 0
    movable: bool = True
    consumable: bool = False
    hp_restore: int = 0
    effect: str = ''
    is_weapon: bool = False
    weapon_damage: int = 0
    weapon_type: str = ''
    readable: bool = False
    readable_text: str = ''
    newsworthy: bool = False

    def matches(self, token: str) -> bool:
        """Id equality, or the token appears in the name or any alias."""
        t = (token or '').strip().lower()
        if not t:
            return False
        if self.id.lower() == t or t in self.name.lower():
            return True
        return any(t in a.lower() for a in self.aliases)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'aliases': list(self.aliases),
            'description': self.description,
            'cost': self.cost,
            'movable': self.movable,
            'consumable': self.consumable,
            'hp_restore': self.hp_restore,
            'effect': self.effect,
            'is_weapon': self.is_weapon,
            'weapon_damage': self.weapon_damage,
            'weapon_type': self.weapon_type,
            'readable': self.readable,
            'readable_text': self.readable_text,
            'newsworthy': self.newsworthy,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "ItemTemplate":
        iid = str(doc_id or data.get('id') or '')
        return ItemTemplate(
            id=iid,
            name=str(data.get('name') or iid),
            aliases=[str(a) for a in _as_list(data.get('aliases'))],
            description=str(data.get('description') or ''),
            cost=max(0, _as_int(data.get('cost'), 0)),
            movable=bool(data.get('movable', True)),
            consumable=bool(data.get('consumable', False)),
            hp_restore=max(0, _as_int(_pick(data, 'hp_restore', 'hpRestore'), 0)),
            effect=str(data.get('effect') or ''),
            is_weapon=bool(_pick(data, 'is_weapon', 'isWeapon', default=False)),
            weapon_damage=max(0, _as_int(_pick(data, 'weapon_damage', 'weaponDamage'), 0)),
            weapon_type=str(_pick(data, 'weapon_type', 'weaponType', default='')),
            readable=bool(_pick(data, 'readable', 'isReadable', default=False)),
            readable_text=str(_pick(data, 'readable_text', 'readableText', default='')),
            newsworthy=bool(data.get('newsworthy', False)),
        )


@dataclass
class NpcTemplate:
    id: str
    name: str
    short_name: str = ''
    description: str = ''
    # Either fixed lines (picked at random) or a personality prompt for the AI.
    dialogue: Union[List[str], str] = field(default_factory=list)
    use_ai: bool = False
    triggers: Dict[str, str] = field(default_factory=dict)  # keyword -> item id
    sells: List[str] = field(default_factory=list)
    hp: int = 0
    min_atk: int = 0
    max_atk: int = 0

    @property
    def display_name(self) -> str:
        return self.short_name or self.name

    def matches(self, token: str) -> bool:
        t = (token or '').strip().lower()
        if not t:
            return False
        return (
            self.id.lower() == t
            or t in self.name.lower()
            or (bool(self.short_name) and t in self.short_name.lower())
        )

    def dialogue_lines(self) -> List[str]:
        if isinstance(self.dialogue, str):
            return [self.dialogue] if self.dialogue.strip() else []
        return [d for d in self.dialogue if d]

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'short_name': self.short_name,
            'description': self.description,
            'dialogue': self.dialogue if isinstance(self.dialogue, str) else list(self.dialogue),
            'use_ai': self.use_ai,
            'triggers': dict(self.triggers),
            'sells': list(self.sells),
            'hp': self.hp,
            'min_atk': self.min_atk,
            'max_atk': self.max_atk,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "NpcTemplate":
        nid = str(doc_id or data.get('id') or '')
        dialogue = data.get('dialogue')
        if not isinstance(dialogue, str):
            dialogue = [str(d) for d in _as_list(dialogue)]
        return NpcTemplate(
            id=nid,
            name=str(data.get('name') or nid),
            short_name=str(_pick(data, 'short_name', 'shortName', default='')),
            description=str(data.get('description') or ''),
            dialogue=dialogue,
            use_ai=bool(_pick(data, 'use_ai', 'useAI', default=False)),
            triggers={str(k).lower(): str(v) for k, v in (data.get('triggers') or {}).items()},
            sells=[str(s) for s in _as_list(data.get('sells'))],
            hp=_as_int(data.get('hp'), 0),
            min_atk=_as_int(_pick(data, 'min_atk', 'minAtk'), 0),
            max_atk=_as_int(_pick(data, 'max_atk', 'maxAtk'), 0),
        )


@dataclass
class MonsterTemplate:
    id: str
    name: str
    description: str = ''
    hp: int = 10
    min_atk: int = 1
    max_atk: int = 3
    xp_reward: int = 0
    gold_reward: int = 0
    item_drop: Optional[str] = None
    newsworthy: bool = False

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'hp': self.hp,
            'min_atk': self.min_atk,
            'max_atk': self.max_atk,
            'xp_reward': self.xp_reward,
            'gold_reward': self.gold_reward,
            'item_drop': self.item_drop,
            'newsworthy': self.newsworthy,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "MonsterTemplate":
        mid = str(doc_id or data.get('id') or '')
        min_atk = max(0, _as_int(_pick(data, 'min_atk', 'minAtk'), 1))
        max_atk = max(min_atk, _as_int(_pick(data, 'max_atk', 'maxAtk'), min_atk))
        return MonsterTemplate(
            id=mid,
            name=str(data.get('name') or mid),
            description=str(data.get('description') or ''),
            hp=max(1, _as_int(data.get('hp'), 10)),
            min_atk=min_atk,
            max_atk=max_atk,
            xp_reward=max(0, _as_int(_pick(data, 'xp_reward', 'xpReward', 'xp'), 0)),
            gold_reward=max(0, _as_int(_pick(data, 'gold_reward', 'goldReward', 'gold'), 0)),
            item_drop=_pick(data, 'item_drop', 'itemDrop') or None,
            newsworthy=bool(data.get('newsworthy', False)),
        )


@dataclass
class SpellTemplate:
    id: str
    name: str
    description: str = ''
    mp_cost: int = 10
    level_required: int = 1
    target_type: str = C.SPELL_TARGET_SELF
    damage: int = 0
    healing: int = 0
    special_effects: str = ''

    def matches(self, token: str) -> bool:
        t = (token or '').strip().lower()
        return bool(t) and (t == self.id.lower() or t == self.name.lower())

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'mp_cost': self.mp_cost,
            'level_required': self.level_required,
            'target_type': self.target_type,
            'damage': self.damage,
            'healing': self.healing,
            'special_effects': self.special_effects,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "SpellTemplate":
        spell_id = str(doc_id or data.get('id') or '')
        target = str(_pick(data, 'target_type', 'targetType', default=C.SPELL_TARGET_SELF))
        return SpellTemplate(
            id=spell_id,
            name=str(data.get('name') or spell_id),
            description=str(data.get('description') or ''),
            mp_cost=max(0, _as_int(_pick(data, 'mp_cost', 'mpCost'), 10)),
            level_required=max(1, _as_int(_pick(data, 'level_required', 'levelRequired'), 1)),
            target_type=target if target in C.SPELL_TARGET_TYPES else C.SPELL_TARGET_SELF,
            damage=max(0, _as_int(data.get('damage'), 0)),
            healing=max(0, _as_int(data.get('healing'), 0)),
            special_effects=str(_pick(data, 'special_effects', 'specialEffects', default='') or ''),
        )


# =============================================================================
# Live entities (mutated during play)
# =============================================================================

@dataclass
class MonsterInstance:
    id: str
    monster_id: str
    room_id: str
    name: str
    hp: int
    max_hp: int

    def to_dict(self) -> dict:
        return {
            'monster_id': self.monster_id,
            'room_id': self.room_id,
            'name': self.name,
            'hp': self.hp,
            'max_hp': self.max_hp,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "MonsterInstance":
        max_hp = max(1, _as_int(_pick(data, 'max_hp', 'maxHp'), 1))
        return MonsterInstance(
            id=str(doc_id or data.get('id') or ''),
            monster_id=str(_pick(data, 'monster_id', 'monsterId', default='')),
            room_id=str(_pick(data, 'room_id', 'roomId', default='')),
            name=str(data.get('name') or 'monster'),
            hp=_as_int(data.get('hp'), max_hp),
            max_hp=max_hp,
        )


@dataclass
class InventoryItem:
    """Snapshot of an item taken at acquisition time."""
    id: str
    name: str
    cost: int = 0
    movable: bool = True

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'cost': self.cost, 'movable': self.movable}

    @staticmethod
    def from_dict(data: dict) -> "InventoryItem":
        iid = str(data.get('id') or '')
        return InventoryItem(
            id=iid,
            name=str(data.get('name') or iid),
            cost=_as_int(data.get('cost'), 0),
            movable=bool(data.get('movable', True)),
        )

    @staticmethod
    def from_template(tpl: ItemTemplate) -> "InventoryItem":
        return InventoryItem(id=tpl.id, name=tpl.name, cost=tpl.cost, movable=tpl.movable)


@dataclass
class Attributes:
    strength: int = 10
    dexterity: int = 10
    constitution: int = 10
    intelligence: int = 10
    wisdom: int = 10
    charisma: int = 10

    _KEYS = (
        ('str', 'strength'),
        ('dex', 'dexterity'),
        ('con', 'constitution'),
        ('int', 'intelligence'),
        ('wis', 'wisdom'),
        ('cha', 'charisma'),
    )

    def plus(self, bonus: int) -> "Attributes":
        return Attributes(**{attr: getattr(self, attr) + bonus for _k, attr in self._KEYS})

    def to_dict(self) -> dict:
        return {k: getattr(self, attr) for k, attr in self._KEYS}

    @staticmethod
    def from_dict(data: dict | None) -> "Attributes":
        data = data or {}
        return Attributes(**{attr: _as_int(_pick(data, k, attr), 10) for k, attr in Attributes._KEYS})


@dataclass
class Player:
    id: str
    name: str
    room_id: str = C.DEFAULT_HOME_ROOM
    inventory: List[InventoryItem] = field(default_factory=list)
    money: int = 0
    hp: int = C.DEFAULT_STARTING_HP
    max_hp: int = C.DEFAULT_STARTING_HP
    mp: int = C.DEFAULT_STARTING_MP
    max_mp: int = C.DEFAULT_STARTING_MP
    xp: int = 0
    score: int = 0
    level: int = 1
    attributes: Attributes = field(default_factory=Attributes)
    # Attributes rolled at creation; level growth is applied on top of these.
    base_attributes: Attributes = field(default_factory=Attributes)
    base_max_hp: int = C.DEFAULT_STARTING_HP
    visited_rooms: List[str] = field(default_factory=list)
    known_spells: List[str] = field(default_factory=list)
    is_admin: bool = False

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'room_id': self.room_id,
            'inventory': [i.to_dict() for i in self.inventory],
            'money': self.money,
            'hp': self.hp,
            'max_hp': self.max_hp,
            'mp': self.mp,
            'max_mp': self.max_mp,
            'xp': self.xp,
            'score': self.score,
            'level': self.level,
            'attributes': self.attributes.to_dict(),
            'base_attributes': self.base_attributes.to_dict(),
            'base_max_hp': self.base_max_hp,
            'visited_rooms': list(self.visited_rooms),
            'known_spells': list(self.known_spells),
            'is_admin': self.is_admin,
        }

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "Player":
        pid = str(doc_id or data.get('id') or '')
        max_hp = max(1, _as_int(_pick(data, 'max_hp', 'maxHp'), C.DEFAULT_STARTING_HP))
        hp = min(max_hp, max(0, _as_int(data.get('hp'), max_hp)))
        max_mp = max(0, _as_int(_pick(data, 'max_mp', 'maxMp'), C.DEFAULT_STARTING_MP))
        mp = min(max_mp, max(0, _as_int(data.get('mp'), max_mp)))
        attrs = Attributes.from_dict(data.get('attributes'))
        base_raw = _pick(data, 'base_attributes', 'baseAttributes')
        return Player(
            id=pid,
            name=str(data.get('name') or pid),
            room_id=str(_pick(data, 'room_id', 'roomId', default=C.DEFAULT_HOME_ROOM)),
            inventory=[InventoryItem.from_dict(i) for i in _as_list(data.get('inventory')) if isinstance(i, dict)],
            money=max(0, _as_int(data.get('money'), 0)),
            hp=hp,
            max_hp=max_hp,
            mp=mp,
            max_mp=max_mp,
            xp=max(0, _as_int(data.get('xp'), 0)),
            score=max(0, _as_int(data.get('score'), 0)),
            level=max(1, _as_int(data.get('level'), 1)),
            attributes=attrs,
            base_attributes=Attributes.from_dict(base_raw) if base_raw else attrs,
            base_max_hp=max(1, _as_int(_pick(data, 'base_max_hp', 'baseMaxHp'), max_hp)),
            visited_rooms=_unique([str(r) for r in _as_list(_pick(data, 'visited_rooms', 'visitedRooms'))]),
            known_spells=_unique([str(s) for s in _as_list(_pick(data, 'known_spells', 'knownSpells'))]),
            is_admin=bool(_pick(data, 'is_admin', 'isAdmin', default=False)),
        )

    def best_weapon(self, items: Dict[str, ItemTemplate]) -> Optional[ItemTemplate]:
        """Highest-damage weapon template among carried items."""
        best: Optional[ItemTemplate] = None
        for inv in self.inventory:
            tpl = items.get(inv.id)
            if tpl and tpl.is_weapon and (best is None or tpl.weapon_damage > best.weapon_damage):
                best = tpl
        return best

    def find_inventory(self, token: str) -> Optional[InventoryItem]:
        t = (token or '').strip().lower()
        if not t:
            return None
        for inv in self.inventory:
            if inv.id.lower() == t:
                return inv
        for inv in self.inventory:
            if t in inv.name.lower() or t in inv.id.lower():
                return inv
        return None


@dataclass
class NewsEntry:
    id: str
    kind: str
    player_name: str
    text: str
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {'kind': self.kind, 'player_name': self.player_name, 'text': self.text, 'timestamp': self.timestamp}

    @staticmethod
    def from_dict(data: dict, doc_id: str | None = None) -> "NewsEntry":
        return NewsEntry(
            id=str(doc_id or data.get('id') or ''),
            kind=str(data.get('kind') or 'news'),
            player_name=str(_pick(data, 'player_name', 'playerName', default='Someone')),
            text=str(_pick(data, 'text', 'event', default='')),
            timestamp=_as_float(data.get('timestamp'), 0.0),
        )


def new_player(player_id: str, name: str, home_room_id: str = C.DEFAULT_HOME_ROOM,
               rng: Optional[random.Random] = None) -> Player:
    """Create a level 1 character with rolled attributes (4d6, keep 3 highest)."""
    rng = rng or random.Random()
    attrs = Attributes(**{attr: roll('4d6kh3', rng).total for _k, attr in Attributes._KEYS})
    return Player(
        id=player_id,
        name=name,
        room_id=home_room_id,
        money=C.DEFAULT_STARTING_MONEY,
        attributes=attrs,
        base_attributes=attrs,
        visited_rooms=[home_room_id],
    )


# =============================================================================
# Read cache
# =============================================================================

class World:
    """In-memory snapshot of the store, kept current by subscriptions."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.rooms: Dict[str, Room] = {}
        self.items: Dict[str, ItemTemplate] = {}
        self.npcs: Dict[str, NpcTemplate] = {}
        self.monsters: Dict[str, MonsterTemplate] = {}
        self.spells: Dict[str, SpellTemplate] = {}
        self.active_monsters: Dict[str, MonsterInstance] = {}
        self.players: Dict[str, Player] = {}
        self._unsubscribers: List[Callable[[], None]] = []
        self._bind(C.COL_ROOMS, self.rooms, Room.from_dict)
        self._bind(C.COL_ITEMS, self.items, ItemTemplate.from_dict)
        self._bind(C.COL_NPCS, self.npcs, NpcTemplate.from_dict)
        self._bind(C.COL_MONSTERS, self.monsters, MonsterTemplate.from_dict)
        self._bind(C.COL_SPELLS, self.spells, SpellTemplate.from_dict)
        self._bind(C.COL_ACTIVE_MONSTERS, self.active_monsters, MonsterInstance.from_dict)
        self._bind(C.COL_PLAYERS, self.players, Player.from_dict)

    def _bind(self, collection: str, target: Dict[str, Any], factory: Callable[[dict, str], Any]) -> None:
        def _on_change(doc_id: str, doc: Optional[dict]) -> None:
            if doc is None:
                target.pop(doc_id, None)
            else:
                target[doc_id] = factory(doc, doc_id)
        self._unsubscribers.append(self.store.subscribe(collection, _on_change))

    def close(self) -> None:
        for unsub in self._unsubscribers:
            unsub()
        self._unsubscribers.clear()

    # --- lookups ----------------------------------------------------------

    def room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def find_item_by_name(self, token: str) -> Optional[ItemTemplate]:
        t = (token or '').strip().lower()
        if not t:
            return None
        if t in self.items:
            return self.items[t]
        for tpl in self.items.values():
            if tpl.matches(t):
                return tpl
        return None

    def find_room_item(self, room: Room, token: str) -> Optional[ItemTemplate]:
        for iid in room.items:
            tpl = self.items.get(iid)
            if tpl and tpl.matches(token):
                return tpl
        return None

    def find_npc_in_room(self, room: Room, token: str) -> Optional[NpcTemplate]:
        for nid in room.npcs:
            npc = self.npcs.get(nid)
            if npc and npc.matches(token):
                return npc
        return None

    def find_spell(self, token: str) -> Optional[SpellTemplate]:
        for spell in self.spells.values():
            if spell.matches(token):
                return spell
        return None

    def monsters_in_room(self, room_id: str) -> List[MonsterInstance]:
        return [m for m in self.active_monsters.values() if m.room_id == room_id]

    def find_monster_in_room(self, room_id: str, token: str) -> Optional[MonsterInstance]:
        t = (token or '').strip().lower()
        if not t:
            return None
        for m in self.monsters_in_room(room_id):
            if t in m.name.lower() or m.monster_id.lower() == t:
                return m
        return None

    def players_in_room(self, room_id: str, exclude_id: str | None = None) -> List[Player]:
        return [p for p in self.players.values() if p.room_id == room_id and p.id != exclude_id]

    def find_player_in_room(self, room_id: str, token: str, exclude_id: str | None = None) -> Optional[Player]:
        t = (token or '').strip().lower()
        if not t:
            return None
        for p in self.players_in_room(room_id, exclude_id):
            if t in p.name.lower():
                return p
        return None


def player_path(player_id: str) -> str:
    return doc_path(C.COL_PLAYERS, player_id)


def room_path(room_id: str) -> str:
    return doc_path(C.COL_ROOMS, room_id)


def monster_path(instance_id: str) -> str:
    return doc_path(C.COL_ACTIVE_MONSTERS, instance_id)
