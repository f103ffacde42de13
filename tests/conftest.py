"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Everything time-driven runs on a ManualScheduler, and every store writes
under tmp_path.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings
from src.engine import (
    AnswerValidator,
    EngineContext,
    ManualScheduler,
    MemoryBackend,
    SessionEngine,
    SessionStore,
    StorageStrategy,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the user's home directory."""
    return Settings(
        _env_file=None,
        storage_dir=tmp_path / "storage",
        enable_session_storage=True,
        enable_local_storage=True,
        enable_database=False,
        global_time_limit_ms=None,
        question_time_limit_ms=None,
    )


@pytest.fixture
def scheduler():
    """Virtual clock starting at 0ms."""
    return ManualScheduler()


@pytest.fixture
def memory_store(scheduler):
    """Store with only the ephemeral backend."""
    store = SessionStore(
        {StorageStrategy.SESSION: MemoryBackend("test")},
        scheduler,
        save_interval=5000,
        namespace="test",
    )
    yield store
    store.close()


@pytest.fixture
def store(settings, scheduler):
    """Store with the memory and file backends under tmp_path."""
    store = SessionStore.from_settings(settings, scheduler)
    yield store
    store.close()


@pytest.fixture
def context(settings, scheduler, store):
    return EngineContext.create(settings, scheduler, store, AnswerValidator())


@pytest.fixture
def engine(context):
    return SessionEngine(context)


# =============================================================================
# Exercise definitions
# =============================================================================


@pytest.fixture
def capitals_exercise():
    """Three multiple-choice questions; the first carries a hint."""
    return {
        "id": "capitals",
        "type": "multipleChoice",
        "title": "European Capitals",
        "questions": [
            {
                "id": 1,
                "question": "What is the capital of France?",
                "options": ["Berlin", "Paris", "Madrid"],
                "correctAnswer": 1,
                "hint": "It is known as the city of light.",
            },
            {
                "id": 2,
                "question": "What is the capital of Spain?",
                "options": ["Madrid", "Lisbon", "Rome"],
                "correctAnswer": 0,
            },
            {
                "id": 3,
                "question": "What is the capital of Italy?",
                "options": ["Vienna", "Athens", "Rome"],
                "correctAnswer": 2,
            },
        ],
    }


@pytest.fixture
def blanks_exercise():
    return {
        "id": "animals",
        "type": "fill-in-blanks",
        "questions": [
            {"question": "The ___ sat on the ___.", "correctAnswers": ["cat", "mat"]},
            {"question": "A ___ barks.", "correctAnswers": ["dog"], "difficulty": "easy"},
        ],
    }
