# tests/test_fetcher.py
import math

import pytest

from export.fetcher import PagedFetcher, chunk_ids, endpoint_for
from export.registry import REGISTRY
from tests.conftest import API_BASE, FakeLayerVault, node
from utils.api import ApiError


def test_chunk_ids_consecutive_slices():
    assert chunk_ids(list(range(10)), 3) == [[0, 1, 2], [3, 4, 5], [6, 7, 8], [9]]
    assert chunk_ids([], 3) == []
    with pytest.raises(ValueError):
        chunk_ids([1], 0)


def test_endpoint_joins_ids_with_commas():
    assert endpoint_for(REGISTRY["files"], [1, "2", 3]) == "/api/v2/files/1,2,3"


def test_empty_ids_make_no_request():
    fake = FakeLayerVault({})
    fetcher = PagedFetcher(fake, max_ids_per_request=10)
    assert fetcher.fetch("files", []) == []
    assert fake.calls == []


@pytest.mark.parametrize("count,per_request", [(1000, 300), (401, 400), (7, 2)])
def test_batches_cover_every_id_exactly_once(count, per_request):
    files = [node(i, slug=f"f-{i}") for i in range(count)]
    fake = FakeLayerVault({"files": files})
    fetcher = PagedFetcher(fake, max_ids_per_request=per_request, max_workers=4)

    result = fetcher.fetch("files", [f["id"] for f in files])

    assert len(fake.calls) == math.ceil(count / per_request)
    assert all(len(ids) <= per_request for _, ids in fake.calls)
    returned = sorted(e["id"] for e in result)
    assert returned == list(range(count))  # no duplicates, no omissions


def test_testing_limit_truncates_before_batching():
    projects = [node(i, name=f"P{i}") for i in range(20)]
    fake = FakeLayerVault({"projects": projects})
    fetcher = PagedFetcher(fake, max_ids_per_request=2, testing_limit=5)

    result = fetcher.fetch("projects", list(range(20)))

    assert sorted(e["id"] for e in result) == [0, 1, 2, 3, 4]
    assert len(fake.calls) == 3


def test_fetch_many_groups_types_and_keeps_empty_requests():
    fake = FakeLayerVault({
        "folders": [node(1, name="A"), node(2, name="B")],
        "files": [node(9, slug="x")],
    })
    fetcher = PagedFetcher(fake, max_ids_per_request=1)

    out = fetcher.fetch_many({"folders": [1, 2], "files": [9], "users": []})

    assert sorted(e["id"] for e in out["folders"]) == [1, 2]
    assert [e["id"] for e in out["files"]] == [9]
    assert out["users"] == []
    assert len(fake.calls) == 3


def test_any_failed_batch_fails_the_whole_fetch():
    fake = FakeLayerVault({"files": [node(i) for i in range(10)]}, fail_types={"files"})
    fetcher = PagedFetcher(fake, max_ids_per_request=3)
    with pytest.raises(ApiError):
        fetcher.fetch("files", list(range(10)))


def test_missing_envelope_key_is_an_error(requests_mock, api):
    requests_mock.get(f"{API_BASE}/api/v2/files/1", json={"revisions": []})
    fetcher = PagedFetcher(api)
    with pytest.raises(ApiError, match="envelope"):
        fetcher.fetch("files", [1])


def test_fetch_through_real_client(requests_mock, api):
    requests_mock.get(f"{API_BASE}/api/v2/users/1,2", json={"users": [node(1), node(2)]})
    fetcher = PagedFetcher(api)
    assert [u["id"] for u in fetcher.fetch("users", [1, 2])] == [1, 2]
