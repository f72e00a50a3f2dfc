import mongomock
import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

import database
import main
from storage import ObjectStore, get_object_store
from tests.helpers import bearer, make_user

BASE_URL = "https://files.test"


class FakeS3Client:
    """Just enough of the boto3 S3 client for ObjectStore."""

    def __init__(self):
        self.objects = {}
        self.fail_after = None  # number of puts that succeed before failures start
        self.fail_deletes = False

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.fail_after is not None:
            if self.fail_after <= 0:
                raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "PutObject")
            self.fail_after -= 1
        self.objects[Key] = (Body, ContentType)
        return {}

    def delete_object(self, Bucket, Key):
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "InternalError", "Message": "boom"}}, "DeleteObject")
        self.objects.pop(Key, None)
        return {}


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    db = mongomock.MongoClient()["portfolio_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    return db


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def store(s3):
    return ObjectStore(s3, "test-bucket", BASE_URL)


@pytest.fixture
def client(store):
    main.app.dependency_overrides[get_object_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return bearer(make_user("admin@portfolio.dev", "admin"), "admin")


@pytest.fixture
def user_headers():
    return bearer(make_user("visitor@portfolio.dev"), "user")
