"""
Tests for candidate generation and its fallback chain.
"""
import threading
from unittest.mock import MagicMock

import pytest

from llm.provider_base import LLMResponse
from optimization.generator import (
    SOURCE_DEFAULT,
    SOURCE_PREFERENCE,
    SOURCE_SEARCH,
    SOURCE_SERVICE,
    CandidateGenerator,
)
from workflows.catalog import default_catalog
from workflows.variant import WorkflowVariant


def service_answering(content, finish_reason='stop'):
    service = MagicMock()
    service.chat.return_value = LLMResponse(content=content, finish_reason=finish_reason)
    return service


@pytest.fixture
def catalog():
    return default_catalog()


class TestWithoutService:
    def test_searched_catalog_member_is_used(self, catalog):
        gen = CandidateGenerator(catalog, preferences=lambda s: ['full'])

        result = gen.generate('AAPL', catalog.get('quick'))

        assert result.variant.name == 'quick'
        assert result.source == SOURCE_SEARCH
        assert result.error is None

    def test_foreign_variant_falls_back_to_preference(self, catalog):
        gen = CandidateGenerator(catalog, preferences=lambda s: ['full'])
        stranger = WorkflowVariant(name='stranger', steps=('fetch_bars', 'predict'))

        result = gen.generate('AAPL', stranger)

        assert result.variant.name == 'full'
        assert result.source == SOURCE_PREFERENCE


class TestWithService:
    """Service answers are validated against the catalog."""

    def test_json_answer(self, catalog):
        gen = CandidateGenerator(catalog, service=service_answering('{"workflow": "sentiment"}'))

        result = gen.generate('AAPL', catalog.get('technical'))

        assert result.variant.name == 'sentiment'
        assert result.source == SOURCE_SERVICE

    def test_fenced_json_answer(self, catalog):
        content = '```json\n{"workflow": "full", "reason": "both factors"}\n```'
        gen = CandidateGenerator(catalog, service=service_answering(content))

        assert gen.generate('AAPL', catalog.get('technical')).variant.name == 'full'

    def test_bare_name_answer(self, catalog):
        gen = CandidateGenerator(catalog, service=service_answering('quick'))

        assert gen.generate('AAPL', catalog.get('technical')).variant.name == 'quick'

    def test_unknown_name_falls_back(self, catalog):
        gen = CandidateGenerator(catalog, service=service_answering('{"workflow": "rm -rf"}'),
                                 preferences=lambda s: ['missing', 'quick'])

        result = gen.generate('AAPL', catalog.get('technical'))

        assert result.variant.name == 'quick'
        assert result.source == SOURCE_PREFERENCE
        assert 'not in the catalog' in result.error

    def test_error_response_falls_back(self, catalog):
        gen = CandidateGenerator(catalog, service=service_answering('No LLM provider available', 'error'),
                                 preferences=lambda s: ['full'])

        result = gen.generate('AAPL', catalog.get('technical'))

        assert result.source == SOURCE_PREFERENCE
        assert result.variant.name == 'full'

    @pytest.mark.parametrize('answer', [None, 'technical', {'workflow': 'full'}])
    def test_malformed_answer_falls_back(self, catalog, answer):
        service = MagicMock()
        service.chat.return_value = answer
        gen = CandidateGenerator(catalog, service=service, preferences=lambda s: ['sentiment'])

        result = gen.generate('AAPL', catalog.get('technical'))

        assert result.variant.name == 'sentiment'
        assert result.source == SOURCE_PREFERENCE
        assert 'malformed' in result.error

    def test_raising_service_falls_back(self, catalog):
        service = MagicMock()
        service.chat.side_effect = ConnectionError('gateway down')
        gen = CandidateGenerator(catalog, service=service, preferences=lambda s: [])

        result = gen.generate('AAPL', catalog.get('technical'))

        assert result.variant.name == 'technical'
        assert result.source == SOURCE_DEFAULT

    def test_timeout_falls_back(self, catalog):
        release = threading.Event()
        service = MagicMock()
        service.chat.side_effect = lambda messages: release.wait(5) and None
        gen = CandidateGenerator(catalog, service=service, timeout=0.05,
                                 preferences=lambda s: ['sentiment'])

        try:
            result = gen.generate('AAPL', catalog.get('technical'))
        finally:
            release.set()

        assert result.variant.name == 'sentiment'
        assert result.error == 'Generation timed out'

    def test_prompt_lists_catalog(self, catalog):
        service = service_answering('{"workflow": "full"}')
        gen = CandidateGenerator(catalog, service=service)

        gen.generate('TSLA', catalog.get('quick'), catalog.get('technical'), 0.55)

        messages = service.chat.call_args[0][0]
        prompt = messages[-1].content
        assert 'Instrument: TSLA' in prompt
        assert 'Tree search suggests: quick' in prompt
        assert 'win rate 55.00%' in prompt
        for name in catalog.names():
            assert f'- {name}:' in prompt


class TestPreferencesFromSettings:
    def test_instrument_specific_list(self, catalog):
        gen = CandidateGenerator(catalog)
        assert gen.fallback('TSLA', 'test').variant.name == 'sentiment_driven'

    def test_default_list(self, catalog):
        gen = CandidateGenerator(catalog)
        assert gen.fallback('MSFT', 'test').variant.name == 'technical'
