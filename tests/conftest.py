"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def light_votes() -> list:
    """Two votes for turning the light on, one for turning it off."""
    from decision_engine.models.vote import Vote

    return [
        Vote(voter_id="A", intent="encender_luz", confidence=0.9, weight=1.0,
             entities={"lugar": "salon"}),
        Vote(voter_id="B", intent="encender_luz", confidence=0.8, weight=1.0,
             entities={"lugar": "salon"}),
        Vote(voter_id="C", intent="apagar_luz", confidence=0.95, weight=0.9,
             entities={"lugar": "cocina"}),
    ]
