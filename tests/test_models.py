# tests/test_models.py
from pathlib import Path

import pytest

from models import AccessToken, ExportConfig, TreeIndex


def test_tree_index_keys_ids_as_strings():
    index = TreeIndex()
    index.add("projects", [{"id": 7, "name": "A"}, {"id": "8", "name": "B"}])

    assert index.get("projects", "7")["name"] == "A"
    assert index.get("projects", 8)["name"] == "B"
    assert index.has("projects", 7)
    assert index.get("folders", 1) is None
    assert index.counts() == {"projects": 2}
    assert len(index) == 2


def test_tree_index_last_write_wins():
    index = TreeIndex()
    index.add("files", [{"id": 1, "slug": "old"}])
    index.add("files", [{"id": 1, "slug": "new"}])
    assert index.get("files", 1)["slug"] == "new"
    assert index.ids("files") == ["1"]


def test_export_config_defaults_and_validation():
    cfg = ExportConfig(output_root="exports")
    assert cfg.max_ids_per_request == 400
    assert cfg.max_concurrent_requests == 10
    assert cfg.output_root == Path("exports")
    with pytest.raises(ValueError):
        ExportConfig(max_concurrent_requests=0)
    with pytest.raises(ValueError):
        ExportConfig(testing_limit=-1)


def test_access_token_from_response():
    token = AccessToken.from_response({"access_token": "abc", "expires_in": 60})
    assert token.token_type == "bearer"
    assert token.authorization_header == {"Authorization": "Bearer abc"}
