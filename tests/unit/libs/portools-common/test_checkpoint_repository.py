# tests/unit/libs/portools-common/test_checkpoint_repository.py
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from portools_common.change_feed import ResumeToken
from portools_common.checkpoint_repository import CheckpointRepository, InMemoryCheckpointStore

pytestmark = pytest.mark.asyncio


@pytest.fixture
def mock_db_session() -> MagicMock:
    """A session whose begin() works as an async context manager."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.connection = AsyncMock()
    return session


@pytest.fixture
def session_factory(mock_db_session: MagicMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = mock_db_session
    return factory


@pytest.fixture
def repository(session_factory: MagicMock) -> CheckpointRepository:
    return CheckpointRepository(session_factory=session_factory, synchronous_commit="remote_apply")


def compiled(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


async def test_rejects_unknown_synchronous_commit_level(session_factory):
    with pytest.raises(ValueError):
        CheckpointRepository(session_factory=session_factory, synchronous_commit="on; DROP TABLE x")


async def test_upsert_statement_shape():
    sql = compiled(CheckpointRepository.build_upsert("stream", ResumeToken(offsets={0: 4})))

    assert "INSERT INTO change_feed_checkpoints" in sql
    assert "ON CONFLICT (consumer_id) DO UPDATE SET" in sql
    assert "position = excluded.position" in sql


async def test_put_checkpoint_uses_strong_commit(repository, mock_db_session):
    """
    GIVEN a checkpoint repository configured for remote_apply
    WHEN a checkpoint is written
    THEN synchronous_commit is raised for that transaction before the upsert runs.
    """
    await repository.put_checkpoint("stream", ResumeToken(offsets={0: 4}))

    assert mock_db_session.execute.await_count == 2
    set_local = mock_db_session.execute.await_args_list[0][0][0]
    assert str(set_local) == "SET LOCAL synchronous_commit = remote_apply"
    upsert = mock_db_session.execute.await_args_list[1][0][0]
    assert "ON CONFLICT (consumer_id) DO UPDATE SET" in compiled(upsert)
    mock_db_session.begin.assert_called_once()


async def test_put_checkpoint_retries_transient_errors(repository, mock_db_session):
    transient = OperationalError("UPDATE", {}, Exception("connection reset"))
    mock_db_session.execute.side_effect = [transient, None, None]

    await repository.put_checkpoint("stream", ResumeToken(offsets={0: 4}))

    assert mock_db_session.execute.await_count == 3


async def test_put_checkpoint_gives_up_after_retries(repository, mock_db_session):
    mock_db_session.execute.side_effect = OperationalError("UPDATE", {}, Exception("down"))

    with pytest.raises(OperationalError):
        await repository.put_checkpoint("stream", ResumeToken(offsets={0: 4}))

    assert mock_db_session.execute.await_count == 3


async def test_get_checkpoint_reads_serializable(repository, mock_db_session):
    result = MagicMock()
    result.scalar_one_or_none.return_value = {"offsets": {"0": 5, "2": 1}}
    mock_db_session.execute.return_value = result

    token = await repository.get_checkpoint("stream")

    assert token == ResumeToken(offsets={0: 5, 2: 1})
    options = mock_db_session.connection.await_args.kwargs["execution_options"]
    assert options["isolation_level"] == "SERIALIZABLE"
    assert options["postgresql_readonly"] is True


async def test_get_checkpoint_absent(repository, mock_db_session):
    result = MagicMock()
    result.scalar_one_or_none.return_value = None
    mock_db_session.execute.return_value = result

    assert await repository.get_checkpoint("stream") is None


async def test_in_memory_store_overwrites():
    store = InMemoryCheckpointStore()
    assert await store.get_checkpoint("stream") is None

    await store.put_checkpoint("stream", ResumeToken(offsets={0: 1}))
    await store.put_checkpoint("stream", ResumeToken(offsets={0: 2}))

    assert await store.get_checkpoint("stream") == ResumeToken(offsets={0: 2})
    assert await store.get_checkpoint("other") is None
