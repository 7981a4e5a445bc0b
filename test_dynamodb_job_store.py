"""Tests for the DynamoDB job store with the PynamoDB client mocked out."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pynamodb.expressions.update import AddAction, RemoveAction, SetAction

from fetchvault.schema.download import DownloadJob, DownloadStatus
from fetchvault.transfer.core.exceptions import DuplicateIdError, NotFoundError
from fetchvault.transfer.state.client import ConditionalCheckFailedError
from fetchvault.transfer.state.job_store import DynamoDBJobStore
from fetchvault.transfer.state.models import RECORD_TYPE, DownloadModel


def make_job(download_id: str = "a1") -> DownloadJob:
    return DownloadJob(
        download_id=download_id,
        source_url="https://example.com/archive.zip",
        file_name="archive.zip",
        storage_key=f"downloads/{download_id}/archive.zip",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def stored_attributes(**overrides):
    values = {
        "source_url": "https://example.com/archive.zip",
        "file_name": "archive.zip",
        "storage_key": "downloads/a1/archive.zip",
        "status": "pending",
        "progress": 0,
        "download_count": 0,
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return values


@pytest.fixture
def client():
    mock_client = MagicMock()
    mock_client.put_item = AsyncMock()
    mock_client.get_item = AsyncMock()
    mock_client.update_item = AsyncMock()
    mock_client.query_index = AsyncMock()
    mock_client.create_table_if_not_exists = AsyncMock(return_value=False)
    return mock_client


@pytest.fixture
def store(settings, client):
    return DynamoDBJobStore(settings, client=client)


def refresh_item_with(**attributes):
    """update_item side effect that mimics PynamoDB refreshing the item from ALL_NEW."""

    async def _update(item, actions, condition=None):
        for name, value in attributes.items():
            setattr(item, name, value)

    return _update


@pytest.mark.asyncio
async def test_create_uses_not_exists_condition(store, client):
    job = await store.create(make_job())

    item = client.put_item.call_args.args[0]
    condition = client.put_item.call_args.kwargs["condition"]

    assert isinstance(item, DownloadModel)
    assert item.record_type == RECORD_TYPE
    assert item.status == "pending"
    assert condition is not None
    assert job.download_id == "a1"
    assert job.status == DownloadStatus.PENDING


@pytest.mark.asyncio
async def test_create_duplicate_maps_to_duplicate_id(store, client):
    client.put_item.side_effect = ConditionalCheckFailedError("exists")

    with pytest.raises(DuplicateIdError):
        await store.create(make_job())


@pytest.mark.asyncio
async def test_get_missing_returns_none(store, client):
    client.get_item.return_value = None

    assert await store.get("a1") is None


@pytest.mark.asyncio
async def test_get_converts_item(store, client):
    client.get_item.return_value = DownloadModel("a1", **stored_attributes(status="completed", progress=100))

    job = await store.get("a1")

    assert job.status == DownloadStatus.COMPLETED
    assert job.progress == 100
    assert job.storage_locator == ""


@pytest.mark.asyncio
async def test_update_fields_builds_set_and_remove_actions(store, client):
    client.update_item.side_effect = refresh_item_with(**stored_attributes(status="downloading", progress=5))

    job = await store.update_fields("a1", status=DownloadStatus.DOWNLOADING, progress=5, error=None)

    actions = client.update_item.call_args.args[1]
    set_actions = [action for action in actions if isinstance(action, SetAction)]
    remove_actions = [action for action in actions if isinstance(action, RemoveAction)]

    # updated_at, status, progress
    assert len(set_actions) == 3
    assert len(remove_actions) == 1
    assert client.update_item.call_args.kwargs["condition"] is not None
    assert job.status == DownloadStatus.DOWNLOADING
    assert job.progress == 5


@pytest.mark.asyncio
async def test_update_fields_missing_maps_to_not_found(store, client):
    client.update_item.side_effect = ConditionalCheckFailedError("missing")

    with pytest.raises(NotFoundError):
        await store.update_fields("a1", progress=10)


@pytest.mark.asyncio
async def test_update_fields_rejects_immutable(store, client):
    with pytest.raises(ValueError):
        await store.update_fields("a1", storage_key="downloads/other")

    client.update_item.assert_not_called()


@pytest.mark.asyncio
async def test_increment_counter_adds_with_condition(store, client):
    client.update_item.side_effect = refresh_item_with(**stored_attributes(status="completed", download_count=3))

    job = await store.increment_counter("a1", "download_count", 1, match={"status": DownloadStatus.COMPLETED})

    actions = client.update_item.call_args.args[1]
    assert any(isinstance(action, AddAction) for action in actions)
    assert job.download_count == 3


@pytest.mark.asyncio
async def test_increment_counter_condition_unmet(store, client):
    client.update_item.side_effect = ConditionalCheckFailedError("condition")

    with pytest.raises(NotFoundError):
        await store.increment_counter("a1", "download_count", match={"status": "completed"})

    assert store.stats["conditional_misses"] == 1


@pytest.mark.asyncio
async def test_increment_counter_rejects_non_counter(store):
    with pytest.raises(ValueError):
        await store.increment_counter("a1", "progress")


@pytest.mark.asyncio
async def test_list_queries_index_newest_first(store, client):
    client.query_index.return_value = [
        DownloadModel("b2", **stored_attributes(storage_key="downloads/b2/archive.zip")),
        DownloadModel("a1", **stored_attributes()),
    ]

    jobs = await store.list(limit=2)

    args, kwargs = client.query_index.call_args
    assert args[1] == RECORD_TYPE
    assert kwargs["limit"] == 2
    assert kwargs["scan_index_forward"] is False
    assert [job.download_id for job in jobs] == ["b2", "a1"]
