import asyncio
import json

import httpx
import pytest

from app.core.config import get_settings
from app.services.storage import SupabaseStorageService


class FakeStorageApi:
    """In-memory stand-in for the Storage REST API."""

    def __init__(self):
        self.objects = {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        prefix = "/storage/v1/object/user_documents"

        if request.method == "POST" and path.startswith(prefix + "/"):
            self.objects[path[len(prefix) + 1:]] = request.content
            return httpx.Response(200, json={"Key": path})
        if request.method == "GET" and path.startswith(prefix + "/"):
            key = path[len(prefix) + 1:]
            if key not in self.objects:
                return httpx.Response(400, json={"statusCode": "404", "message": "Object not found"})
            return httpx.Response(200, content=self.objects[key])
        if request.method == "DELETE" and path == prefix:
            removed = []
            for key in json.loads(request.content)["prefixes"]:
                if self.objects.pop(key, None) is not None:
                    removed.append({"name": key})
            return httpx.Response(200, json=removed)
        if request.method == "GET" and path == "/storage/v1/bucket":
            return httpx.Response(200, json=[])
        return httpx.Response(500, json={"message": "unexpected call"})


@pytest.fixture
def api(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "supabase_url", "https://project.supabase.co/")
    monkeypatch.setattr(settings, "supabase_service_key", "service-key")
    return FakeStorageApi()


def test_requires_credentials(monkeypatch):
    monkeypatch.setattr(get_settings(), "supabase_url", None)
    with pytest.raises(ValueError):
        SupabaseStorageService()


def test_upload_download_remove(api):
    service = SupabaseStorageService(transport=httpx.MockTransport(api))

    stored = asyncio.run(service.upload("user_documents", "u-1/1_a.pdf", b"abc", "application/pdf"))
    assert stored.success and stored.size_bytes == 3

    upload_request = api.requests[0]
    assert upload_request.headers["authorization"] == "Bearer service-key"
    assert upload_request.headers["apikey"] == "service-key"
    assert upload_request.headers["content-type"] == "application/pdf"
    assert upload_request.headers["x-upsert"] == "true"

    fetched = asyncio.run(service.download("user_documents", "u-1/1_a.pdf"))
    assert fetched.success and fetched.data == b"abc"

    assert asyncio.run(service.remove("user_documents", "u-1/1_a.pdf")).removed is True
    again = asyncio.run(service.remove("user_documents", "u-1/1_a.pdf"))
    assert again.success is True and again.removed is False

    missing = asyncio.run(service.download("user_documents", "u-1/1_a.pdf"))
    assert missing.not_found is True

    assert asyncio.run(service.health_check()) is True


def test_upload_failure_is_reported(api):
    def failing(request):
        return httpx.Response(413, json={"message": "Payload too large"})

    service = SupabaseStorageService(transport=httpx.MockTransport(failing))
    result = asyncio.run(service.upload("user_documents", "u-1/x.pdf", b"x", "application/pdf"))
    assert result.success is False
    assert result.error_message == "Payload too large"
