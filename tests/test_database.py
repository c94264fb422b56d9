"""Index setup and document helpers on a mongomock database."""
import mongomock
import pytest
from bson.objectid import ObjectId

from database import SUB_RESOURCE_COLLECTIONS, ensure_indexes, parse_object_id, to_public
from errors import BadRequest


@pytest.fixture
def fresh_db():
    return mongomock.MongoClient()["portfolio_indexes"]


class TestEnsureIndexes:
    def test_runs_twice_without_conflict(self, fresh_db):
        ensure_indexes(fresh_db)
        ensure_indexes(fresh_db)

        for name in SUB_RESOURCE_COLLECTIONS:
            assert "user_id_1" in fresh_db[name].index_information()

    def test_introduction_owner_is_unique(self, fresh_db):
        ensure_indexes(fresh_db)

        assert fresh_db["introduction"].index_information()["user_id_1"].get("unique") is True
        assert not fresh_db["education"].index_information()["user_id_1"].get("unique")

    def test_unique_user_identity(self, fresh_db):
        ensure_indexes(fresh_db)
        info = fresh_db["user"].index_information()

        assert info["username_1"].get("unique") is True
        assert info["email_1"].get("unique") is True
        assert fresh_db["project"].index_information()["slug_1"].get("unique") is True


class TestHelpers:
    def test_to_public_renames_id_and_stringifies(self):
        owner = ObjectId()
        doc = to_public({"_id": owner, "user_id": owner, "refs": [owner]})
        assert doc == {"id": str(owner), "user_id": str(owner), "refs": [str(owner)]}

    def test_parse_object_id_rejects_garbage(self):
        with pytest.raises(BadRequest) as exc:
            parse_object_id("nope", "userId")
        assert exc.value.message == "Invalid userId"
