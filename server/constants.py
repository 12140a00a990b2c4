"""
Realm MUD Server Constants

Central location for event names, message categories, direction tables and the
gameplay defaults shared by the services. Keeping them here avoids magic strings
scattered through the handlers and keeps the client protocol in one place.

Each constant carries a short note about where it is used.
"""

# =============================================================================
# Socket.IO Event Names
# =============================================================================

# Event the client emits with a raw command line: { 'content': str }
MESSAGE_IN = 'message_to_server'

# Event the server emits for every rendered line: { 'type': str, 'content': str }
MESSAGE_OUT = 'message'

# =============================================================================
# Message Categories
# =============================================================================

# Coarse categories the presentation layer uses to colour lines.
MSG_TYPE_SYSTEM = 'system'    # command results, status blocks
MSG_TYPE_GAME = 'game'        # room descriptions, inventory listings
MSG_TYPE_ERROR = 'error'      # validation failures, degraded services
MSG_TYPE_COMBAT = 'combat'    # damage, deaths, monster appearances
MSG_TYPE_NPC = 'npc'          # quoted NPC speech
MSG_TYPE_CHAT = 'chat'        # player speech
MSG_TYPE_ACTION = 'action'    # emotes and narrated NPC actions

MESSAGE_TYPES = (
    MSG_TYPE_SYSTEM,
    MSG_TYPE_GAME,
    MSG_TYPE_ERROR,
    MSG_TYPE_COMBAT,
    MSG_TYPE_NPC,
    MSG_TYPE_CHAT,
    MSG_TYPE_ACTION,
)

# =============================================================================
# Store Collections
# =============================================================================

# Collection names inside the document store. Paths are '<collection>/<doc id>'.
COL_ROOMS = 'rooms'
COL_ITEMS = 'items'
COL_NPCS = 'npcs'
COL_MONSTERS = 'monsters'
COL_ACTIVE_MONSTERS = 'active_monsters'
COL_PLAYERS = 'players'
COL_NEWS = 'news'
COL_SPELLS = 'spells'

# =============================================================================
# Directions
# =============================================================================

# Shortcut words accepted in place of a full direction (intent_parser)
DIRECTION_SHORTCUTS = {
    'n': 'north',
    's': 'south',
    'e': 'east',
    'w': 'west',
    'ne': 'northeast',
    'nw': 'northwest',
    'se': 'southeast',
    'sw': 'southwest',
    'u': 'up',
    'd': 'down',
}

DIRECTIONS = tuple(DIRECTION_SHORTCUTS.values())

# Phrase used when narrating movement ("Ann leaves the north.")
DIRECTION_NAMES = {
    'north': 'the north',
    'south': 'the south',
    'east': 'the east',
    'west': 'the west',
    'up': 'above',
    'down': 'below',
    'northeast': 'the northeast',
    'northwest': 'the northwest',
    'southeast': 'the southeast',
    'southwest': 'the southwest',
}

OPPOSITE_DIRECTIONS = {
    'north': 'south',
    'south': 'north',
    'east': 'west',
    'west': 'east',
    'up': 'down',
    'down': 'up',
    'northeast': 'southwest',
    'southwest': 'northeast',
    'northwest': 'southeast',
    'southeast': 'northwest',
}

# =============================================================================
# Gameplay Defaults (overridable through game_config / MUD_* env vars)
# =============================================================================

DEFAULT_HOME_ROOM = 'start'
DEFAULT_DISCOVERY_BONUS = 25
DEFAULT_DEATH_GOLD_PENALTY = 0.1
DEFAULT_RESPAWN_SECONDS = 60
DEFAULT_SELL_RATE = 0.4
DEFAULT_MAX_LEVEL = 30
DEFAULT_BASE_XP = 100
DEFAULT_HP_PER_LEVEL = 10
DEFAULT_STARTING_HP = 100
DEFAULT_STARTING_MP = 100
DEFAULT_MP_PER_LEVEL = 5
DEFAULT_STARTING_MONEY = 25

# Messages kept in a conversation history window (3 player/NPC round trips)
DEFAULT_HISTORY_LIMIT = 6

# Number of news entries shown by the 'news' command
NEWS_FEED_LIMIT = 20

ATTRIBUTE_NAMES = ('str', 'dex', 'con', 'int', 'wis', 'cha')

# Who a spell lands on
SPELL_TARGET_SELF = 'self'
SPELL_TARGET_ENEMY = 'single-enemy'
SPELL_TARGET_ALLY = 'single-ally'
SPELL_TARGET_ALL_ENEMIES = 'all-enemies'
SPELL_TARGET_ALL_ALLIES = 'all-allies'
SPELL_TARGET_TYPES = (
    SPELL_TARGET_SELF,
    SPELL_TARGET_ENEMY,
    SPELL_TARGET_ALLY,
    SPELL_TARGET_ALL_ENEMIES,
    SPELL_TARGET_ALL_ALLIES,
)

# Title shown next to a level, index 0 is level 1
LEVEL_NAMES = [
    'Novice', 'Apprentice', 'Initiate', 'Wanderer', 'Explorer',
    'Adventurer', 'Seeker', 'Pathfinder', 'Scout', 'Ranger',
    'Veteran', 'Warrior', 'Champion', 'Hero', 'Guardian',
    'Knight', 'Paladin', 'Warlord', 'Conqueror', 'Master',
    'Grandmaster', 'Sage', 'Archmage', 'Legend', 'Mythic',
    'Immortal', 'Demigod', 'Titan', 'Ascendant', 'God',
]

# =============================================================================
# User-facing Messages
# =============================================================================

ERROR_NOT_CONNECTED = 'You are not connected to a character.'
ERROR_NOWHERE = 'You are nowhere.'
ERROR_TRY_AGAIN = 'Something went wrong, please try again.'
ERROR_STORE_UNAVAILABLE = 'The world could not be saved right now. Your last command was not applied.'
ERROR_GENERIC = 'Something went wrong with that command.'
ERROR_MESSAGE_TOO_LONG = 'Message too long'

# Fallback strings returned by the text generator
AI_OFFLINE_TEXT = 'The AI is offline.'
AI_SILENT_TEXT = 'The AI is silent for now.'
AI_EMPTY_TEXT = 'The AI is pondering...'

DEFAULT_MAX_MESSAGE_LENGTH = 1000
DEFAULT_LOG_FORMAT = '[%(levelname)s] %(message)s'
SAFETY_LEVELS = ['G', 'PG-13', 'R', 'OFF']
DEFAULT_SAFETY_LEVEL = 'PG-13'

ENV_GEMINI_API_KEY = 'GEMINI_API_KEY'
ENV_GOOGLE_API_KEY = 'GOOGLE_API_KEY'


def get_message_payload(msg_type: str, content: str) -> dict:
    """Build a presentation payload; unknown categories degrade to 'system'."""
    if msg_type not in MESSAGE_TYPES:
        msg_type = MSG_TYPE_SYSTEM
    return {'type': msg_type, 'content': content}


def level_name(level: int) -> str:
    idx = max(1, min(int(level or 1), len(LEVEL_NAMES))) - 1
    return LEVEL_NAMES[idx]
