"""Starter content written into an empty store on first boot.

Small on purpose: a hub room, a market with a merchant and an AI sage, and two
hunting grounds with monster spawns, plus a short spell book. Real worlds are authored out of band and
loaded from the snapshot file.
"""

from __future__ import annotations

import logging
from typing import Dict

import constants as C
from document_store import DocumentStore, doc_path

logger = logging.getLogger(__name__)

STARTER_ITEMS: Dict[str, dict] = {
    'torch': {'name': 'Torch', 'aliases': ['light'], 'cost': 5, 'description': 'A pitch-soaked torch.'},
    'potion': {'name': 'Healing Potion', 'aliases': ['potion', 'flask'], 'cost': 15,
               'consumable': True, 'hp_restore': 25, 'description': 'A small flask of red liquid.'},
    'ale': {'name': 'Mug of Ale', 'aliases': ['beer', 'ale'], 'cost': 2,
            'consumable': True, 'hp_restore': 2, 'effect': 'You feel warm inside.'},
    'sword': {'name': 'Iron Sword', 'aliases': ['blade'], 'cost': 40,
              'is_weapon': True, 'weapon_damage': 3, 'weapon_type': 'slashing'},
    'dagger': {'name': 'Rusty Dagger', 'cost': 8, 'is_weapon': True, 'weapon_damage': 1,
               'weapon_type': 'piercing'},
    'scroll': {'name': 'Faded Scroll', 'readable': True,
               'readable_text': 'Beware the wolf that hunts beneath the forest.'},
    'fountain': {'name': 'Stone Fountain', 'movable': False, 'description': 'Water bubbles endlessly.'},
    'wolf_pelt': {'name': 'Wolf Pelt', 'cost': 12, 'newsworthy': True},
}

STARTER_NPCS: Dict[str, dict] = {
    'merchant': {
        'name': 'Frank the merchant', 'short_name': 'Frank',
        'description': 'A round man behind a stall piled with goods.',
        'dialogue': ['Finest wares in the realm!', 'Coin first, questions later.'],
        'sells': ['torch', 'potion', 'sword'],
    },
    'barkeep': {
        'name': 'Mara the barkeep', 'short_name': 'Mara',
        'description': 'She polishes a mug that will never be clean.',
        'dialogue': ['What will it be?', 'Heard wolves howling below the forest.'],
        'sells': ['ale'],
    },
    'sage': {
        'name': 'an old sage', 'short_name': 'Sage',
        'description': 'A hunched figure in star-speckled robes.',
        'dialogue': 'You are a cryptic old sage who speaks in riddles but is kind to travelers.',
        'use_ai': True,
        'triggers': {'light': 'torch', 'darkness': 'torch'},
    },
}

STARTER_MONSTERS: Dict[str, dict] = {
    'goblin': {'name': 'Goblin', 'description': 'A snarling goblin with a rusty blade.',
               'hp': 15, 'min_atk': 1, 'max_atk': 3, 'xp_reward': 20, 'gold_reward': 5,
               'item_drop': 'dagger'},
    'wolf': {'name': 'Dire Wolf', 'description': 'A huge wolf with burning eyes.',
             'hp': 30, 'min_atk': 2, 'max_atk': 6, 'xp_reward': 60, 'gold_reward': 0,
             'item_drop': 'wolf_pelt', 'newsworthy': True},
}

STARTER_SPELLS: Dict[str, dict] = {
    'minor_heal': {'name': 'Minor Heal', 'description': 'A soft glow closes your wounds.',
                   'mp_cost': 10, 'target_type': C.SPELL_TARGET_SELF, 'healing': 20},
    'magic_missile': {'name': 'Magic Missile', 'description': 'A dart of force that never misses.',
                      'mp_cost': 15, 'target_type': C.SPELL_TARGET_ENEMY, 'damage': 10},
    'mend': {'name': 'Mend', 'description': 'Knit the wounds of a companion.',
             'mp_cost': 12, 'level_required': 2, 'target_type': C.SPELL_TARGET_ALLY, 'healing': 15},
    'healing_circle': {'name': 'Healing Circle', 'description': 'Warm light washes over everyone nearby.',
                       'mp_cost': 25, 'level_required': 4, 'target_type': C.SPELL_TARGET_ALL_ALLIES,
                       'healing': 15},
    'fireball': {'name': 'Fireball', 'description': 'A roaring sphere of flame engulfs your foes.',
                 'mp_cost': 30, 'level_required': 5, 'target_type': C.SPELL_TARGET_ALL_ENEMIES,
                 'damage': 20, 'special_effects': 'The air smells of smoke.'},
}

STARTER_ROOMS: Dict[str, dict] = {
    C.DEFAULT_HOME_ROOM: {
        'name': 'The Nexus',
        'description': 'A shimmering portal hangs in the center of this timeless space.',
        'exits': {'north': 'market', 'east': 'forest'},
        'items': ['fountain'],
        'details': {'portal': 'The portal swirls with colours you have no names for.'},
    },
    'market': {
        'name': 'Market Square',
        'description': 'Stalls and shouting traders crowd the square.',
        'exits': {'south': C.DEFAULT_HOME_ROOM},
        'npcs': ['merchant', 'barkeep', 'sage'],
        'items': ['scroll'],
        'details': {'sign': 'Fair prices, no refunds.'},
    },
    'forest': {
        'name': 'Dark Forest',
        'description': 'Twisted trees block out most of the light.',
        'exits': {'west': C.DEFAULT_HOME_ROOM, 'down': 'den'},
        'monster_spawns': [{'monster_id': 'goblin', 'respawn_seconds': 60}],
    },
    'den': {
        'name': 'Wolf Den',
        'description': 'Bones litter the floor of this damp hollow.',
        'exits': {'up': 'forest'},
        'monster_spawns': [{'monster_id': 'wolf', 'respawn_seconds': 300}],
    },
}


def seed_default_world(store: DocumentStore) -> bool:
    """Write the starter world if the store is empty; return True if seeded."""
    if not store.is_empty():
        return False
    staged = {}
    for collection, docs in (
        (C.COL_ITEMS, STARTER_ITEMS),
        (C.COL_NPCS, STARTER_NPCS),
        (C.COL_MONSTERS, STARTER_MONSTERS),
        (C.COL_SPELLS, STARTER_SPELLS),
        (C.COL_ROOMS, STARTER_ROOMS),
    ):
        for doc_id, doc in docs.items():
            staged[doc_path(collection, doc_id)] = {'id': doc_id, **doc}

    def _body(tx) -> None:
        for path, doc in staged.items():
            tx.set(path, doc)
    store.run_transaction(_body)
    logger.info(f"Seeded starter world with {len(STARTER_ROOMS)} rooms")
    return True
