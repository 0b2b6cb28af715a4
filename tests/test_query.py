"""
Tests for the QueryFacade.
"""

from __future__ import annotations

import pytest

from deployment_scaler.cache.mirror import Mirror
from deployment_scaler.cache.query import QueryFacade
from deployment_scaler.cache.sync_state import SyncState
from deployment_scaler.errors import InvalidInputError, NotFoundError
from deployment_scaler.models.deployment import MirroredObject
from deployment_scaler.validation import MISSING_KEY_MESSAGE


@pytest.fixture
def mirror():
    m = Mirror()
    m.upsert(MirroredObject("default", "web", 3, "10"))
    m.upsert(MirroredObject("default", "api", 2, "11"))
    m.upsert(MirroredObject("batch", "worker", 0, "12"))
    return m


@pytest.fixture
def query(mirror):
    return QueryFacade(mirror, SyncState())


class TestGetByKey:

    def test_found(self, query):
        found_obj, found = query.get_by_key("default", "web")
        assert found is True
        assert found_obj.replicas == 3

    def test_missing(self, query):
        found_obj, found = query.get_by_key("default", "nope")
        assert found is False
        assert found_obj is None


class TestListByNamespace:

    def test_all(self, query):
        assert query.list_by_namespace() == [
            ("batch", "worker"),
            ("default", "api"),
            ("default", "web"),
        ]

    def test_empty_string_means_all(self, query):
        assert query.list_by_namespace("") == query.list_by_namespace(None)

    def test_one_namespace(self, query):
        assert query.query_list("default") == [("default", "api"), ("default", "web")]

    def test_unknown_namespace(self, query):
        assert query.query_list("nowhere") == []


class TestQuerySingle:

    def test_returns_object(self, query):
        assert query.query_single("batch", "worker").replicas == 0

    @pytest.mark.parametrize("namespace,name", [
        (None, "web"),
        ("default", None),
        ("", "web"),
        ("default", ""),
    ])
    def test_missing_key_is_invalid_input(self, query, namespace, name):
        with pytest.raises(InvalidInputError) as exc:
            query.query_single(namespace, name)
        assert exc.value.message == MISSING_KEY_MESSAGE

    def test_absent_is_not_found(self, query):
        with pytest.raises(NotFoundError) as exc:
            query.query_single("default", "nope")
        assert exc.value.namespace == "default"
        assert exc.value.name == "nope"

    def test_prior_value_until_delete_applied(self, query, mirror):
        assert query.query_single("default", "web").replicas == 3
        mirror.remove(("default", "web"))
        with pytest.raises(NotFoundError):
            query.query_single("default", "web")


class TestReadiness:

    def test_ready_after_mark_synced(self, mirror):
        state = SyncState()
        query = QueryFacade(mirror, state)
        assert query.is_ready() is False

        state.mark_synced()
        first = state.synced_at
        state.mark_synced()

        assert query.is_ready() is True
        assert state.synced_at == first
