"""Shared test configuration and fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from file_analyzer.llm import AIResponse

# Load .env from project root for all tests
root = Path(__file__).parent.parent.resolve()
load_dotenv(root / ".env")


class FakeAIClient:
    """Scripted AIClient: replays responses (or raises exceptions) in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def generate(self, request):
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str) or item is None:
            return AIResponse(text=item)
        return item


@pytest.fixture
def make_client():
    return FakeAIClient
