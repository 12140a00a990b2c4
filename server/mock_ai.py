"""MockAI - Configurable stand-ins for the Gemini model in tests.

MockAIModel exposes the same generate_content(prompt, safety_settings=None)
method as google.generativeai.GenerativeModel and returns objects with a
.text attribute, so it can be handed to ai_utils.TextGenerator or to the
intent parser unchanged.

Usage:
    mock = MockAIModel(default_response='"Greetings," *the sage nods*')
    mock.add_response_pattern(r"asked you specifically about \\"light\\"",
                              "Take this. [GIVE_ITEM:torch]")
    ctx.text_generator = TextGenerator(mock)
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)


class MockAIResponse:
    """Mimics a Gemini response: only .text is read by the game."""

    def __init__(self, text: Optional[str]):
        self.text = text


class MockAIModel:
    """Regex-routed canned responses plus error injection and call tracking.

    Error patterns are checked before response patterns; the first match wins.
    Every prompt is recorded in call_history.
    """

    def __init__(self, default_response: Optional[str] = "Mock AI response"):
        self.default_response = default_response
        self.response_patterns: List[Tuple[str, Optional[str]]] = []
        self.error_patterns: List[Tuple[str, Exception]] = []
        self.call_history: List[str] = []
        self.call_count = 0

    def add_response_pattern(self, pattern: str, response: Optional[str]) -> None:
        self.response_patterns.append((pattern, response))

    def add_error_pattern(self, pattern: str, error: Exception) -> None:
        self.error_patterns.append((pattern, error))

    def generate_content(self, prompt: str, safety_settings: Optional[Any] = None) -> MockAIResponse:
        self.call_count += 1
        self.call_history.append(prompt)

        for pattern, error in self.error_patterns:
            if re.search(pattern, prompt, re.IGNORECASE | re.DOTALL):
                logger.debug(f"MockAI: error pattern '{pattern}' matched, raising {type(error).__name__}")
                raise error

        for pattern, response in self.response_patterns:
            if re.search(pattern, prompt, re.IGNORECASE | re.DOTALL):
                logger.debug(f"MockAI: pattern '{pattern}' matched")
                return MockAIResponse(response)

        return MockAIResponse(self.default_response)

    def clear_patterns(self) -> None:
        self.response_patterns.clear()
        self.error_patterns.clear()
        self.call_history.clear()
        self.call_count = 0

    def get_last_prompt(self) -> Optional[str]:
        return self.call_history[-1] if self.call_history else None

    def was_called_with_pattern(self, pattern: str) -> bool:
        return any(re.search(pattern, p, re.IGNORECASE | re.DOTALL) for p in self.call_history)


class FailingAIModel:
    """Raises on every call; exercises the offline fallbacks."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error or RuntimeError("Simulated API error for testing")
        self.call_count = 0

    def generate_content(self, prompt: str, safety_settings: Optional[Any] = None) -> MockAIResponse:
        self.call_count += 1
        raise self.error


# Pre-configured mocks for common scenarios

def create_intent_mock() -> MockAIModel:
    """Returns intent JSON for a few free-form phrasings the local rules don't cover."""
    mock = MockAIModel(default_response=json.dumps({'action': 'unknown'}))
    mock.add_response_pattern(
        r'Command: "what am i holding',
        json.dumps({'action': 'inventory'}),
    )
    mock.add_response_pattern(
        r'Command: "have a chat with the sage',
        json.dumps({'action': 'talk', 'npc_target': 'sage'}),
    )
    mock.add_response_pattern(
        r'Command: "smack the goblin',
        json.dumps({'action': 'attack', 'target': 'goblin', 'verb': 'hit'}),
    )
    mock.add_response_pattern(
        r'Command: "garbled',
        'this is not json',
    )
    return mock


def create_dialogue_mock() -> MockAIModel:
    """Role-play replies using the action/speech convention the prompts ask for."""
    mock = MockAIModel(default_response='*The figure regards you quietly.* "Well met, traveler."')
    mock.add_response_pattern(
        r'asked you specifically about "(light|darkness)"',
        '*The sage rummages in a satchel.* "Darkness is no friend. Take this." [GIVE_ITEM:torch]',
    )
    mock.add_response_pattern(
        r"replying to you",
        '"Indeed. There is more to learn, if you listen."',
    )
    mock.add_error_pattern(r"invalid.*request", Exception("Simulated API error for testing"))
    return mock

