import io

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from flightbook.storage import LocalBucket, ObjectNotFound, S3Bucket, StorageError, get_bucket

from conftest import UnreachableS3


@pytest.fixture
def bucket(tmp_path):
    return LocalBucket("tickets", str(tmp_path), secret_key="k")


def test_local_upload_download_list_remove(bucket):
    bucket.upload("u1/b1/ticket.json", '{"a": 1}', content_type="application/json")
    bucket.upload("u1/b1/ticket.pdf", b"%PDF-1.4")

    assert bucket.download("u1/b1/ticket.json") == b'{"a": 1}'
    assert [e["name"] for e in bucket.list("u1/b1")] == ["ticket.json", "ticket.pdf"]
    assert bucket.list("u1/b1", limit=1)[0]["name"] == "ticket.json"
    assert bucket.list("nothing/here") == []
    assert bucket.exists("u1/b1/ticket.pdf")

    bucket.remove("u1/b1/ticket.pdf")
    assert not bucket.exists("u1/b1/ticket.pdf")
    with pytest.raises(ObjectNotFound):
        bucket.download("u1/b1/ticket.pdf")


def test_local_upload_without_upsert(bucket):
    bucket.upload("b1/ticket.json", "{}")
    with pytest.raises(StorageError, match="The resource already exists"):
        bucket.upload("b1/ticket.json", "{}", upsert=False)
    bucket.upload("b1/ticket.json", "[]", upsert=True)
    assert bucket.download("b1/ticket.json") == b"[]"


def test_local_rejects_paths_outside_bucket(bucket):
    for path in ("../secret.txt", "u1/../../x", "", "/"):
        with pytest.raises(StorageError):
            bucket.upload(path, "x")


def test_private_bucket_needs_valid_token(app, client):
    with app.test_request_context():
        bucket = get_bucket()
        bucket.upload("u1/b1/ticket.pdf", b"%PDF-1.4 test")
        assert bucket.public_url("u1/b1/ticket.pdf") is None
        signed = bucket.signed_url("u1/b1/ticket.pdf", 60)
        expired = bucket.signed_url("u1/b1/ticket.pdf", -1)
        other = bucket.signed_url("u1/b1/other.pdf", 60)

    resp = client.get(signed)
    assert resp.status_code == 200
    assert resp.data == b"%PDF-1.4 test"

    assert client.get("/storage/tickets/u1/b1/ticket.pdf").status_code == 403
    assert client.get(expired).status_code == 403
    token = other.split("token=", 1)[1]
    assert client.get(f"/storage/tickets/u1/b1/ticket.pdf?token={token}").status_code == 403
    assert client.get("/storage/tickets/u1/b1/ticket.pdf?token=garbage").status_code == 403


def test_public_bucket_serves_directly(app, client):
    with app.test_request_context():
        bucket = get_bucket()
        bucket.public = True
        bucket.upload("b1/ticket.html", "<h1>ticket</h1>")
        url = bucket.public_url("b1/ticket.html")

    assert url == "/storage/tickets/b1/ticket.html"
    resp = client.get(url)
    assert resp.status_code == 200
    assert resp.mimetype == "text/html"
    assert client.get("/storage/tickets/b1/missing.html").status_code == 404
    assert client.get("/storage/unknown/b1/ticket.html").status_code == 404


class FakeS3:
    def __init__(self):
        self.objects = {}

    def _missing(self, code, op):
        return ClientError({"Error": {"Code": code, "Message": "Not Found"}}, op)

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = (Body, ContentType)

    def get_object(self, Bucket, Key):
        if Key not in self.objects:
            raise self._missing("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[Key][0])}

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise self._missing("404", "HeadObject")
        return {}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)

    def list_objects_v2(self, Bucket, Prefix, MaxKeys):
        keys = sorted(k for k in self.objects if k.startswith(Prefix))[:MaxKeys]
        return {"Contents": [{"Key": k, "Size": len(self.objects[k][0])} for k in keys]}

    def generate_presigned_url(self, method, Params, ExpiresIn):
        return f"https://s3.example.com/{Params['Bucket']}/{Params['Key']}?expires={ExpiresIn}"


def test_s3_bucket_maps_calls_onto_client():
    fake = FakeS3()
    bucket = S3Bucket("tickets", bucket="flightbook-tickets", region="eu-west-1", client=fake)

    bucket.upload("u1/b1/ticket.json", "{}")
    bucket.upload("u1/b1/nested/extra.json", "{}")
    assert fake.objects["u1/b1/ticket.json"] == (b"{}", "application/json")
    assert bucket.download("u1/b1/ticket.json") == b"{}"
    assert [e["name"] for e in bucket.list("u1/b1")] == ["ticket.json"]
    assert bucket.exists("u1/b1/ticket.json")

    with pytest.raises(StorageError, match="already exists"):
        bucket.upload("u1/b1/ticket.json", "{}", upsert=False)

    assert bucket.public_url("u1/b1/ticket.json") is None
    assert bucket.signed_url("u1/b1/ticket.json", 600).endswith("u1/b1/ticket.json?expires=600")

    bucket.remove("u1/b1/ticket.json")
    assert not bucket.exists("u1/b1/ticket.json")
    with pytest.raises(ObjectNotFound):
        bucket.download("u1/b1/ticket.json")


def test_s3_public_url():
    bucket = S3Bucket("tickets", bucket="flightbook-tickets", region="eu-west-1", public=True, client=FakeS3())
    assert bucket.public_url("b1/ticket.pdf") == "https://flightbook-tickets.s3.eu-west-1.amazonaws.com/b1/ticket.pdf"


@pytest.mark.parametrize("error", [
    EndpointConnectionError(endpoint_url="https://flightbook-tickets.s3.eu-west-1.amazonaws.com"),
    NoCredentialsError(),
])
def test_s3_transport_errors_become_storage_errors(error):
    bucket = S3Bucket("tickets", bucket="flightbook-tickets", region="eu-west-1", client=UnreachableS3(error))

    with pytest.raises(StorageError):
        bucket.upload("u1/b1/ticket.json", "{}")
    with pytest.raises(StorageError):
        bucket.download("u1/b1/ticket.json")
    with pytest.raises(StorageError):
        bucket.list("u1/b1")
    with pytest.raises(StorageError):
        bucket.remove("u1/b1/ticket.json")
    with pytest.raises(StorageError):
        bucket.signed_url("u1/b1/ticket.json", 60)
    with pytest.raises(StorageError):
        bucket.upload("u1/b1/ticket.json", "{}", upsert=False)
    assert bucket.exists("u1/b1/ticket.json") is False


def test_signed_url_is_bound_to_its_bucket(app, tmp_path):
    with app.test_request_context():
        receipts = LocalBucket("receipts", str(tmp_path), secret_key="test-secret")
        token = receipts.signed_url("u1/b1/ticket.pdf", 60).split("token=", 1)[1]
        assert receipts.verify_token(token, "u1/b1/ticket.pdf")
        assert not get_bucket().verify_token(token, "u1/b1/ticket.pdf")
