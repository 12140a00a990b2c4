"""
Flask-SocketIO server for the MUD.

What this file does (in plain English):
- Starts a web socket server (Socket.IO protocol) that game clients connect to.
- Loads the document store from world_state.json (seeding the starter world the
    first time) and keeps a World read cache on top of it.
- Each connection plays one character. Lines the client sends as
    'message_to_server' go through message_handler; every reply comes back as a
    'message' event shaped { type, content }.
- If AI isn't configured, NPCs and the free-text parser fall back to canned
    behaviour so the game still works offline.

Exception Handling:
Best-effort calls (socket emits, room membership updates) go through safe_call()
from safe_utils.py, which logs the first occurrence of each exception type.

Maintenance tip: you can reset the saved world state from the command line without starting the server:

    python server/server.py --purge --yes
"""

from __future__ import annotations

# --- Async server selection & monkey patching (MUST be first, after __future__) ---
_ASYNC_MODE = "threading"
try:
    import eventlet  # type: ignore

    def _patch_eventlet():
        eventlet.monkey_patch()  # type: ignore[attr-defined]

    try:
        _patch_eventlet()
    except Exception as e:
        # Note: can't use safe_call here as safe_utils isn't imported yet
        print(f"Warning: eventlet monkey patching failed: {e}")
    _ASYNC_MODE = "eventlet"
except Exception:
    _ASYNC_MODE = "threading"

import sys
import os
import logging
import socket
import atexit
import random
import threading
from typing import Any, Dict, List, Optional

# Optional .env support
try:
    from dotenv import load_dotenv  # type: ignore
    load_dotenv()
except Exception:
    pass
try:
    import google.generativeai as genai  # type: ignore
except Exception:
    genai = None  # AI optional

from flask import Flask, request
from flask_socketio import SocketIO, emit, disconnect, join_room, leave_room

import constants as C
import help_service
import message_handler
from ai_utils import DEFAULT_MODEL_NAME, TextGenerator, create_model
from command_context import CommandContext, SessionState
from document_store import DocumentStore, StoreError
from game_config import GameConfig
from intent_parser import IntentParser
from look_service import look
from persistence_utils import flush_all_saves, get_save_stats, save_store
from safe_utils import safe_call, safe_call_with_default
from service_contract import emit_service_result, line
from spawn_service import spawn_on_arrival
from world import World, new_player, player_path
from world_seed import seed_default_world

logger = logging.getLogger(__name__)

MESSAGE_IN = C.MESSAGE_IN
MESSAGE_OUT = C.MESSAGE_OUT
STATE_PATH = os.getenv('MUD_STATE_PATH') or os.path.join(os.path.dirname(__file__), 'world_state.json')


def _purge_state(state_path: str) -> None:
    """Delete the saved store and write a freshly seeded one."""
    if os.path.exists(state_path):
        os.remove(state_path)
    fresh = DocumentStore()
    seed_default_world(fresh)
    fresh.save_to_file(state_path)


def _early_cli_purge_check() -> None:
    """Purge persisted state and exit if --purge is on the command line."""
    argv = [str(a).strip().lower() for a in sys.argv[1:]]
    if not any(a in ('-purge', '--purge') for a in argv):
        return
    if not any(a in ('-y', '--yes') for a in argv):
        print("Are you sure you want to purge the world? This cannot be undone.")
        try:
            ans = input("Type 'Y' to confirm or 'N' to cancel: ")
        except Exception:
            print("No interactive input available; aborting purge. Use --yes to skip confirmation.")
            sys.exit(1)
        if str(ans).strip().lower() not in ('y', 'yes'):
            print("Purge cancelled.")
            sys.exit(0)
    try:
        _purge_state(STATE_PATH)
    except Exception as e:
        print(f"Failed to purge world: {e}")
        sys.exit(1)
    print("World purged and reset to factory defaults.")
    sys.exit(0)


if __name__ == '__main__':
    _early_cli_purge_check()


# Structured logging (env-driven):
# - MUD_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR|CRITICAL (default INFO)
# - MUD_LOG_FORMAT: 'json' or 'text' (default text)
def _setup_logging() -> None:
    """Configure structured logging with proper fallback handling."""
    def _configure_logging():
        level_name = (os.getenv('MUD_LOG_LEVEL') or 'INFO').strip().upper()
        level = getattr(logging, level_name, logging.INFO)
        fmt_mode = (os.getenv('MUD_LOG_FORMAT') or 'text').strip().lower()
        if fmt_mode == 'json':
            class _JsonFormatter(logging.Formatter):
                def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
                    import json as _json
                    payload = {
                        'ts': self.formatTime(record, datefmt='%Y-%m-%dT%H:%M:%S'),
                        'level': record.levelname,
                        'name': record.name,
                        'message': record.getMessage(),
                    }
                    return _json.dumps(payload, ensure_ascii=False)
            handler = logging.StreamHandler()
            handler.setFormatter(_JsonFormatter())
            root = logging.getLogger()
            root.handlers = [handler]
            root.setLevel(level)
        else:
            logging.basicConfig(level=level, format=C.DEFAULT_LOG_FORMAT)

    safe_call(_configure_logging)


_setup_logging()


def _env_str(name: str, default: str) -> str:
    """Get environment variable as string with fallback to default."""
    def _get_env():
        v = os.getenv(name)
        return default if v is None else str(v)
    return safe_call_with_default(_get_env, default)


config = GameConfig.from_env()


# --- Get API Key on Startup ---
api_key = os.getenv(C.ENV_GEMINI_API_KEY) or os.getenv(C.ENV_GOOGLE_API_KEY)
if os.getenv('MUD_AI_DISABLED') == '1':
    api_key = None
if not api_key:
    if genai is None:
        print("google-generativeai not installed. Running with AI disabled.")
    else:
        print("No Gemini API key provided. Running with AI disabled.")
model = create_model(genai, api_key, _env_str('MUD_AI_MODEL', DEFAULT_MODEL_NAME))
if model is not None:
    print("Gemini API configured successfully.")
text_generator = TextGenerator(model, config.safety_level)
intent_parser = IntentParser(text_generator)


# --- Server Setup ---
app = Flask(__name__)
_secret = os.getenv('SECRET_KEY') or 'dev-only-change-me'
if not os.getenv('SECRET_KEY'):
    print("WARNING: Using default dev SECRET_KEY. Set SECRET_KEY env var in production.")
app.config['SECRET_KEY'] = _secret

# Socket.IO heartbeat tuning (configurable)
_PING_INTERVAL = int(_env_str('MUD_PING_INTERVAL_MS', '25000')) / 1000.0
_PING_TIMEOUT = int(_env_str('MUD_PING_TIMEOUT_MS', '60000')) / 1000.0


def _parse_cors_origins(s: str | None) -> str | list[str]:
    """Return '*' (allow all) or a list of allowed origins from CSV env.

    - MUD_CORS_ALLOWED_ORIGINS not set -> '*'
    - Set to '*' (or empty after strip) -> '*'
    - Otherwise, split by comma and strip whitespace.
    """
    def _parse():
        if s is None:
            return '*'
        val = s.strip()
        if not val or val == '*':
            return '*'
        parts = [p.strip() for p in val.split(',') if p.strip()]
        return parts or '*'
    return safe_call_with_default(_parse, '*')


_CORS_ALLOWED = _parse_cors_origins(os.getenv('MUD_CORS_ALLOWED_ORIGINS'))
socketio = SocketIO(
    app,
    cors_allowed_origins=_CORS_ALLOWED,
    async_mode=_ASYNC_MODE,
    ping_interval=_PING_INTERVAL,
    ping_timeout=_PING_TIMEOUT,
)
if _ASYNC_MODE == "threading":
    print("WARNING: eventlet not installed. Falling back to Werkzeug + long-polling.")


# --- World state with JSON persistence ---
store = DocumentStore.load_from_file(STATE_PATH, max_attempts=config.tx_max_attempts)
if seed_default_world(store):
    save_store(store, STATE_PATH, debounced=False)
world = World(store)


def _save_store():
    """Final save on shutdown - must be immediate, not debounced."""
    save_store(store, STATE_PATH, debounced=False)
    flush_all_saves()
    stats = get_save_stats()
    logger.info(f"Final save to {STATE_PATH}: {stats['immediate_calls']} immediate, "
                f"{stats['debounced_calls']} debounced, {stats['errors']} failed")


atexit.register(_save_store)  # one last immediate save on process exit

_rng = random.Random()
_sessions_lock = threading.RLock()
sessions: Dict[str, SessionState] = {}   # sid -> session
_joined: Dict[str, str] = {}             # sid -> game room id the socket has joined


def _channel(room_id: str) -> str:
    return f"room:{room_id}"


def broadcast_to_room(room_id: str, payload: dict, exclude_sid: str | None = None) -> None:
    # Best-effort broadcast; safe_call logs first occurrence of each error type
    safe_call(socketio.emit, MESSAGE_OUT, payload, to=_channel(room_id), skip_sid=exclude_sid, namespace='/')


def send_to_player(player_id: str, payload: dict) -> None:
    """Deliver one line to every socket playing `player_id`."""
    with _sessions_lock:
        sids = [sid for sid, s in sessions.items() if s.player_id == player_id]
    for sid in sids:
        safe_call(socketio.emit, MESSAGE_OUT, payload, to=sid, namespace='/')


def online_player_ids() -> List[str]:
    with _sessions_lock:
        return sorted({s.player_id for s in sessions.values()})


def _move_socket(sid: str, room_id: Optional[str]) -> None:
    """Keep the socket's Socket.IO room equal to its player's game room."""
    current = _joined.get(sid)
    if current == room_id:
        return
    if current is not None:
        safe_call(leave_room, _channel(current), sid=sid, namespace='/')
        _joined.pop(sid, None)
    if room_id is not None:
        safe_call(join_room, _channel(room_id), sid=sid, namespace='/')
        _joined[sid] = room_id


def sync_room_membership(_ctx: Any = None) -> None:
    """Re-join every connected socket to its player's current room.

    Runs after each command; besides the actor, a defeated opponent may have
    been moved to the home room.
    """
    with _sessions_lock:
        pairs = [(sid, s.player_id) for sid, s in sessions.items()]
    for sid, player_id in pairs:
        player = world.players.get(player_id)
        if player is not None:
            _move_socket(sid, player.room_id)


def _command_context(sid: Optional[str]) -> Optional[CommandContext]:
    with _sessions_lock:
        session = sessions.get(sid) if sid else None
    if session is None:
        return None
    return CommandContext(
        store=store,
        world=world,
        session=session,
        broadcast_to_room=broadcast_to_room,
        config=config,
        text_generator=text_generator,
        intent_parser=intent_parser,
        rng=_rng,
        message_out=MESSAGE_OUT,
        state_path=STATE_PATH,
        disconnect=lambda: disconnect(sid=sid, namespace='/'),
        send_to_player=send_to_player,
        online_player_ids=online_player_ids,
    )


def get_sid() -> Optional[str]:
    return getattr(request, 'sid', None)


message_handler.init_message_handler(message_handler.MessageHandlerContext(
    get_sid=get_sid,
    command_context_for=_command_context,
    emit=emit,
    message_out=MESSAGE_OUT,
    max_message_length=config.max_message_length,
    after_command=sync_room_membership,
))


def _ensure_player(player_id: str, name: Optional[str]) -> bool:
    doc = store.get(player_path(player_id))
    if doc is not None:
        return False
    display = (name or '').strip() or f"Adventurer-{player_id[:4]}"
    player = new_player(player_id, display, config.home_room_id, _rng)
    store.set(player_path(player_id), player.to_dict())
    logger.info(f"Created character {display} ({player_id})")
    return True


# --- WebSocket Event Handlers ---

@socketio.on('connect')
def handle_connect(auth=None):
    """Called automatically when a new player connects.

    Identity comes from the Socket.IO auth payload ({player_id, name}) or the
    query string; an unknown id gets a freshly rolled character.
    """
    sid = get_sid()
    auth = auth if isinstance(auth, dict) else {}
    player_id = str(auth.get('player_id') or request.args.get('player_id') or '').strip()
    name = auth.get('name') or request.args.get('name')
    if not player_id:
        player_id = store.new_id()
        emit(MESSAGE_OUT, line(C.MSG_TYPE_SYSTEM, f"Your character id is {player_id}. Use it to reconnect."))
    try:
        created = _ensure_player(player_id, name)
    except StoreError as e:
        logger.error(f"Could not load character {player_id}: {e}")
        emit(MESSAGE_OUT, line(C.MSG_TYPE_ERROR, C.ERROR_STORE_UNAVAILABLE))
        return

    session = SessionState(player_id=player_id, sid=sid, history_limit=config.history_limit)
    with _sessions_lock:
        sessions[sid] = session
    ctx = _command_context(sid)
    player = ctx.load_player()
    logger.info(f"Client connected: {player.name} [sid={sid}]")
    _move_socket(sid, player.room_id)

    emit(MESSAGE_OUT, line(C.MSG_TYPE_SYSTEM, f"Welcome{' back' if not created else ''}, {player.name}."))
    emit(MESSAGE_OUT, line(C.MSG_TYPE_SYSTEM, f'[config] MAX_MESSAGE_LEN={config.max_message_length}'))
    broadcast_to_room(player.room_id, line(C.MSG_TYPE_SYSTEM, f"{player.name} has entered the game."), exclude_sid=sid)

    emit_service_result(ctx, emit, look(ctx))
    arrival = safe_call_with_default(spawn_on_arrival, None, ctx, player.room_id)
    if arrival is not None:
        emit_service_result(ctx, emit, arrival)
    save_store(store, STATE_PATH)


@socketio.on('disconnect')
def handle_disconnect():
    """Called automatically when a player disconnects."""
    sid = get_sid()
    with _sessions_lock:
        session = sessions.pop(sid, None)
    room_id = _joined.get(sid)
    _move_socket(sid, None)
    if session is None:
        return
    player = world.players.get(session.player_id)
    if player is not None and room_id is not None:
        broadcast_to_room(room_id, line(C.MSG_TYPE_SYSTEM, f"{player.name} leaves."), exclude_sid=sid)
    logger.info(f"Client disconnected [sid={sid}]")


socketio.on_event(MESSAGE_IN, message_handler.create_message_handler())


# --- Run the Server ---
if __name__ == '__main__':
    port = int(os.getenv('PORT', '5000'))
    host = os.getenv('HOST', '127.0.0.1')

    def _get_local_ip() -> str | None:
        try:
            # Use a UDP socket trick to discover the primary LAN IP without sending data
            s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            try:
                s.connect(("8.8.8.8", 80))
                ip = s.getsockname()[0]
            finally:
                s.close()
            return ip
        except Exception:
            try:
                return socket.gethostbyname(socket.gethostname())
            except Exception:
                return None

    print("\n=== MUD Server Starting ===")
    print(f"Async mode: {_ASYNC_MODE}")
    print(f"Listening on: {host}:{port}")
    print(f"Client URL: ws://{host}:{port}/socket.io/?EIO=4&transport=websocket")
    if host in ("0.0.0.0", "::"):
        lan_ip = _get_local_ip()
        if lan_ip:
            print(f"LAN clients can use: ws://{lan_ip}:{port}/socket.io/?EIO=4&transport=websocket")
    elif host == "127.0.0.1":
        print("Note: Only this machine can connect. For LAN play, set HOST=0.0.0.0 and share your PC's IP.")
    print("==============================\n")
    help_service.print_command_help()

    socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)
