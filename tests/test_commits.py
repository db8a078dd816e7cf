"""
Tests for commit identity, ordering and CodeCommit resolution.
"""
from unittest.mock import MagicMock

import pytest

from sitepublish.models.snapshot import CommitId
from sitepublish.services.aws.commits import CodeCommitOrderResolver, parse_git_date

from conftest import client_error


class TestCommitId:

    def test_newer_than_nothing(self):
        assert CommitId("a", 1.0).is_newer_than(None)

    def test_same_revision_is_not_newer(self):
        assert not CommitId("a", 5.0).is_newer_than(CommitId("a", 5.0))
        assert not CommitId("a", 5.0).is_older_than(CommitId("a", 5.0))

    def test_ordering(self):
        older, newer = CommitId("a", 1.0), CommitId("b", 2.0)
        assert newer.is_newer_than(older)
        assert not older.is_newer_than(newer)
        assert older.is_older_than(newer)
        assert not newer.is_older_than(older)

    def test_unknown_order_is_never_older(self):
        unknown, known = CommitId("a"), CommitId("b", 2.0)
        assert unknown.is_newer_than(known)
        assert known.is_newer_than(unknown)
        assert not unknown.is_older_than(known)
        assert not known.is_older_than(unknown)

    def test_dict_round_trip(self):
        commit = CommitId("3f2c1e9a4b", 1700000000.0)
        assert CommitId.from_dict(commit.to_dict()) == commit
        assert CommitId.from_dict(None) is None
        assert CommitId.from_dict({"revision": ""}) is None

    def test_short(self):
        assert CommitId("0123456789abcdef0123").short() == "0123456789ab"


@pytest.mark.parametrize("value,expected", [
    ("1484167798 -0800", 1484167798.0),
    ("1700000000", 1700000000.0),
    ("", None),
    (None, None),
    ("yesterday", None),
])
def test_parse_git_date(value, expected):
    assert parse_git_date(value) == expected


class TestCodeCommitOrderResolver:

    def test_uses_committer_date(self):
        client = MagicMock()
        client.get_commit.return_value = {"commit": {
            "commitId": "3f2c1e9a",
            "author": {"date": "1484160000 -0800"},
            "committer": {"date": "1484167798 -0800"},
        }}

        commit = CodeCommitOrderResolver(client, "example.com").resolve("3f2c1e9a")

        assert commit == CommitId("3f2c1e9a", 1484167798.0)
        client.get_commit.assert_called_once_with(repositoryName="example.com",
                                                  commitId="3f2c1e9a")

    def test_falls_back_to_author_date(self):
        client = MagicMock()
        client.get_commit.return_value = {"commit": {"author": {"date": "1484160000 +0000"}}}

        assert CodeCommitOrderResolver(client, "repo").resolve("abc").order == 1484160000.0

    def test_lookup_failure_gives_unknown_order(self):
        client = MagicMock()
        client.get_commit.side_effect = client_error("CommitIdDoesNotExistException")

        commit = CodeCommitOrderResolver(client, "repo").resolve("abc")

        assert commit == CommitId("abc")
        assert commit.order is None

    def test_no_repository(self):
        client = MagicMock()
        assert CodeCommitOrderResolver(client, "").resolve("abc") == CommitId("abc")
        client.get_commit.assert_not_called()
