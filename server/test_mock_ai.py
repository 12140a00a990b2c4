"""Tests for the MockAI stand-ins.

The dialogue and intent tests lean on these mocks, so their routing, error
injection and call tracking need to behave exactly like the docs say.
"""

import json
import os
import sys

import pytest

sys.path.append(os.path.dirname(__file__))

from ai_utils import TextGenerator
from mock_ai import (
    FailingAIModel, MockAIModel, MockAIResponse,
    create_dialogue_mock, create_intent_mock,
)


class TestMockAIModel:

    def test_default_response(self):
        response = MockAIModel("Default test response").generate_content("Random prompt")
        assert isinstance(response, MockAIResponse)
        assert response.text == "Default test response"

    def test_pattern_matching_is_case_insensitive(self):
        model = MockAIModel()
        model.add_response_pattern(r"hello", "Hello back!")
        assert model.generate_content("Say HELLO to me").text == "Hello back!"

    def test_error_patterns_win(self):
        model = MockAIModel()
        model.add_response_pattern(r"torch", "fine")
        model.add_error_pattern(r"torch", ValueError("quota"))
        with pytest.raises(ValueError):
            model.generate_content("give me a torch")

    def test_call_tracking(self):
        model = MockAIModel()
        model.generate_content("first prompt")
        model.generate_content("second prompt", safety_settings=[])
        assert model.call_count == 2
        assert model.get_last_prompt() == "second prompt"
        assert model.was_called_with_pattern(r"FIRST")
        model.clear_patterns()
        assert model.call_count == 0
        assert model.get_last_prompt() is None


def test_failing_model_counts_calls():
    model = FailingAIModel()
    with pytest.raises(RuntimeError):
        model.generate_content("anything")
    assert model.call_count == 1


def test_intent_mock_returns_json():
    mock = create_intent_mock()
    parsed = json.loads(mock.generate_content('Command: "smack the goblin"').text)
    assert parsed == {'action': 'attack', 'target': 'goblin', 'verb': 'hit'}
    assert json.loads(mock.generate_content('Command: "sing"').text) == {'action': 'unknown'}


def test_dialogue_mock_routes_topics():
    mock = create_dialogue_mock()
    assert '[GIVE_ITEM:torch]' in mock.generate_content('asked you specifically about "light"').text
    with pytest.raises(Exception):
        mock.generate_content("this is an invalid request")


def test_text_generator_routes_to_mock():
    mock = MockAIModel('"Patched."')
    generator = TextGenerator(mock)
    assert generator.generate("hi") == '"Patched."'
    assert mock.call_count == 1
    assert mock.get_last_prompt() == "hi"
