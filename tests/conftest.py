import sys
import os

import pytest

# Add the project root directory to sys.path so that 'smart_scraper' and 'cli'
# import directly when tests are run without installing the package.
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if project_root not in sys.path:
    sys.path.insert(0, project_root)


@pytest.fixture(autouse=True)
def no_ai_keys(monkeypatch):
    """Keep provider keys from a developer's .env out of every test."""
    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("LIGHTPANDA_PATH", raising=False)
