import os
import sys

sys.path.append(os.path.dirname(__file__))

import constants as C
from game_config import GameConfig, parse_level_overrides


def test_defaults_without_environment():
    cfg = GameConfig.from_env()
    assert cfg.home_room_id == 'start'
    assert cfg.discovery_bonus == 25
    assert cfg.pvp_enabled is True
    assert cfg.drop_chance == 1.0
    assert cfg.sell_rate == C.DEFAULT_SELL_RATE
    assert cfg.safety_level == C.DEFAULT_SAFETY_LEVEL
    assert cfg.emote_templates['wave'] == '{player} waves.'
    assert cfg.mp_per_level == C.DEFAULT_MP_PER_LEVEL
    assert cfg.npc_trigger_items_only is False


def test_env_overrides(monkeypatch):
    monkeypatch.setenv('MUD_HOME_ROOM', 'market')
    monkeypatch.setenv('MUD_PVP_ENABLED', 'off')
    monkeypatch.setenv('MUD_DISCOVERY_BONUS', '40')
    monkeypatch.setenv('MUD_LEVEL_XP', '2:50, 3:120')
    monkeypatch.setenv('MUD_AI_SAFETY', 'r')
    monkeypatch.setenv('MUD_NPC_TRIGGER_ITEMS_ONLY', 'yes')
    cfg = GameConfig.from_env()
    assert cfg.home_room_id == 'market'
    assert cfg.pvp_enabled is False
    assert cfg.discovery_bonus == 40
    assert cfg.level_xp_overrides == {2: 50, 3: 120}
    assert cfg.safety_level == 'R'
    assert cfg.npc_trigger_items_only is True


def test_values_are_clamped(monkeypatch):
    monkeypatch.setenv('MUD_DROP_CHANCE', '7')
    monkeypatch.setenv('MUD_DEATH_GOLD_PENALTY', '-1')
    monkeypatch.setenv('MUD_MAX_LEVEL', '0')
    monkeypatch.setenv('MUD_TX_MAX_ATTEMPTS', '0')
    monkeypatch.setenv('MUD_HISTORY_LIMIT', '1')
    monkeypatch.setenv('MUD_MP_PER_LEVEL', '-3')
    cfg = GameConfig.from_env()
    assert cfg.drop_chance == 1.0
    assert cfg.death_gold_penalty == 0.0
    assert cfg.max_level == 1
    assert cfg.tx_max_attempts == 1
    assert cfg.history_limit == 2
    assert cfg.mp_per_level == 0


def test_garbage_falls_back(monkeypatch):
    monkeypatch.setenv('MUD_SELL_RATE', 'lots')
    monkeypatch.setenv('MUD_BASE_XP', 'x')
    monkeypatch.setenv('MUD_AI_SAFETY', 'spicy')
    cfg = GameConfig.from_env()
    assert cfg.sell_rate == C.DEFAULT_SELL_RATE
    assert cfg.base_xp == C.DEFAULT_BASE_XP
    assert cfg.safety_level == C.DEFAULT_SAFETY_LEVEL


def test_parse_level_overrides_skips_bad_pairs():
    assert parse_level_overrides('2:50,bogus,3:x,4:900') == {2: 50, 4: 900}
    assert parse_level_overrides(None) == {}
