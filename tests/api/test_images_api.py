"""
HTTP tests for the image and cache routes.

Tests the HTTP layer including authentication, status mapping and response
formatting, over a tmp_path context with the fake transform backend.
"""

import asyncio
from io import BytesIO
from uuid import uuid4

import pytest
from conftest import API_KEY, PNG_HEADER, put_asset
from fastapi import status
from fastapi.testclient import TestClient

from imgmod.api.deps import to_http_error
from imgmod.api.main import create_app
from imgmod.api.routes.images import UPLOAD_CHUNK_SIZE, read_limited
from imgmod.core.entities import Stage
from imgmod.core.errors import IOFailure, Unauthorized, UploadTooLarge

AUTH = {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def client(service_context):
    """Create test client."""
    with TestClient(create_app(service_context)) as client:
        yield client


def upload(client, data=PNG_HEADER + b"pixels", **params):
    return client.post("/upload", params=params, files={"file": ("a.png", data, "image/png")})


class TestMeta:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "image-moderation"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestUpload:
    def test_upload_returns_id(self, client, service_context):
        response = upload(client)
        assert response.status_code == 200
        asset_id = response.text
        assert service_context.stages.asset_path(Stage.PENDING, asset_id).exists()

    def test_any_field_name(self, client):
        response = client.post("/upload", files={"image": ("a.png", PNG_HEADER + b"x", "image/png")})
        assert response.status_code == 200

    def test_no_file(self, client):
        response = client.post("/upload", data={"note": "hello"})
        assert response.status_code == 400

    def test_unsupported_type(self, client):
        assert upload(client, data=b"text file").status_code == 400

    def test_empty(self, client):
        assert upload(client, data=b"").status_code == 400

    def test_too_large(self, client, service_context):
        service_context.lifecycle.max_upload_bytes = 16
        assert upload(client, data=PNG_HEADER + b"x" * 64).status_code == 413

    def test_bad_angle(self, client):
        assert upload(client, angle=45).status_code == 400


class TestModeration:
    def test_submit_needs_no_auth(self, client, service_context):
        asset_id = upload(client).text
        response = client.post(f"/submit/{asset_id}")
        assert response.status_code == 200
        assert response.text == asset_id
        assert service_context.stages.asset_path(Stage.UNAPPROVED, asset_id).exists()

    @pytest.mark.parametrize("action", ["approve", "unapprove"])
    def test_requires_auth(self, client, action):
        response = client.post(f"/{action}/{uuid4()}")
        assert response.status_code == 401

    def test_wrong_key(self, client):
        response = client.post(f"/approve/{uuid4()}", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_approve_and_unapprove(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.UNAPPROVED, asset_id)

        assert client.post(f"/approve/{asset_id}", headers=AUTH).status_code == 200
        assert service_context.locator.stages_holding(asset_id) == [Stage.ORIGINAL]

        assert client.post(f"/unapprove/{asset_id}", params={"auth": API_KEY}).status_code == 200
        assert service_context.locator.stages_holding(asset_id) == [Stage.UNAPPROVED]

    def test_approve_missing(self, client):
        assert client.post(f"/approve/{uuid4()}", headers=AUTH).status_code == 404

    def test_malformed_id(self, client):
        assert client.post("/approve/not-a-uuid", headers=AUTH).status_code == 400

    def test_nil_id(self, client):
        nil = "00000000-0000-0000-0000-000000000000"
        assert client.post(f"/submit/{nil}").status_code == 400

    def test_conflict(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.UNAPPROVED, asset_id)
        put_asset(service_context.stages, Stage.ORIGINAL, asset_id)
        assert client.post(f"/approve/{asset_id}", headers=AUTH).status_code == 409


class TestRotateAndDelete:
    def test_rotate(self, client, service_context):
        asset_id = uuid4()
        path = put_asset(service_context.stages, Stage.ORIGINAL, asset_id, b"img")
        response = client.post("/rotate", params={"id": str(asset_id), "angle": 90}, headers=AUTH)
        assert response.status_code == 200
        assert path.read_bytes() == b"rot90:img"

    def test_rotate_bad_angle(self, client):
        response = client.post("/rotate", params={"id": str(uuid4()), "angle": 45}, headers=AUTH)
        assert response.status_code == 400

    def test_rotate_requires_auth(self, client):
        response = client.post("/rotate", params={"id": str(uuid4()), "angle": 90})
        assert response.status_code == 401

    def test_delete(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.ORIGINAL, asset_id)
        assert client.delete(f"/image/{asset_id}", headers=AUTH).status_code == 200
        assert service_context.locator.stages_holding(asset_id) == []

    def test_delete_missing(self, client):
        assert client.delete(f"/image/{uuid4()}", headers=AUTH).status_code == 404


class TestGetImage:
    def test_public_read(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.ORIGINAL, asset_id, b"src")

        response = client.get(f"/image/{asset_id}", params={"width": 10, "height": 20, "quality": 50})

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/webp"
        assert response.headers["content-disposition"] == f'attachment; filename="{asset_id}.webp"'
        assert response.content == b"10x20@50:1|src"

    def test_unapproved_hidden_without_auth(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.UNAPPROVED, asset_id)

        hidden = client.get(f"/image/{asset_id}")
        missing = client.get(f"/image/{uuid4()}")

        assert hidden.status_code == missing.status_code == 404
        assert hidden.json() == missing.json()

    def test_unapproved_with_auth(self, client, service_context):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.UNAPPROVED, asset_id)
        response = client.get(f"/image/{asset_id}", headers=AUTH)
        assert response.status_code == 200
        assert service_context.cache.entries() == []

    @pytest.mark.parametrize(
        "params",
        [{"width": -1}, {"height": -5}, {"quality": 0}, {"quality": 101}],
    )
    def test_parameter_validation(self, client, params):
        response = client.get(f"/image/{uuid4()}", params=params)
        assert response.status_code == 422

    def test_backend_failure_is_generic_500(self, client, service_context, backend):
        asset_id = uuid4()
        put_asset(service_context.stages, Stage.ORIGINAL, asset_id)
        backend.fail = True

        response = client.get(f"/image/{asset_id}")

        assert response.status_code == 500
        assert response.json() == {"detail": "Error while processing image!"}


class TestCacheAdmin:
    def test_requires_auth(self, client):
        assert client.get("/cache").status_code == 401
        assert client.delete("/cache").status_code == 401

    def test_status_invalidate_and_purge(self, client, service_context):
        a, b = uuid4(), uuid4()
        for asset_id in (a, b):
            put_asset(service_context.stages, Stage.ORIGINAL, asset_id)
            client.get(f"/image/{asset_id}", params={"width": 10})

        status = client.get("/cache", headers=AUTH).json()
        assert status["entries"] == 2
        assert status["width_count"] == {"10": 2}

        response = client.delete(f"/cache/{a}", headers=AUTH)
        assert response.json() == {"id": str(a), "removed": 1}

        assert client.delete("/cache", headers=AUTH).json() == {"removed": 1}
        assert client.get("/cache", headers=AUTH).json()["entries"] == 0


class ChunkedUpload:
    """Upload stand-in that serves a fixed body in chunks and counts reads."""

    def __init__(self, body: bytes) -> None:
        self.stream = BytesIO(body)
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self.stream.read(size)


class TestUploadLimits:
    def test_read_stops_past_limit(self):
        upload = ChunkedUpload(b"x" * (UPLOAD_CHUNK_SIZE * 10))
        with pytest.raises(UploadTooLarge):
            asyncio.run(read_limited(upload, UPLOAD_CHUNK_SIZE + 1))
        assert upload.reads == 2

    def test_read_within_limit(self):
        body = b"y" * (UPLOAD_CHUNK_SIZE + 10)
        assert asyncio.run(read_limited(ChunkedUpload(body), len(body))) == body

    def test_too_large_status(self, client, service_context):
        service_context.lifecycle.max_upload_bytes = 8
        response = upload(client, data=PNG_HEADER + b"x" * 64)
        assert response.status_code == status.HTTP_413_CONTENT_TOO_LARGE
        assert list(service_context.stages.raw.iterdir()) == []


class TestErrorMapping:
    def test_unauthorized_maps_to_401(self):
        error = to_http_error(Unauthorized(), "authorizing request")
        assert error.status_code == status.HTTP_401_UNAUTHORIZED
        assert error.detail == "Invalid token!"

    def test_rejected_key_challenges_bearer(self, client):
        response = client.get("/cache", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_io_failure_is_generic(self):
        error = to_http_error(IOFailure("move", "/data/secret/path"), "moving image")
        assert error.status_code == 500
        assert "secret" not in error.detail
