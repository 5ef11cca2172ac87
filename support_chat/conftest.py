import pytest

from support_chat.database import TranscriptStore, create_db_engine, init_db


@pytest.fixture
def store():
    """A transcript store on a fresh in-memory SQLite database."""
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield TranscriptStore(engine)
    engine.dispose()
