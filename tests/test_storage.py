"""
Unit tests for the storage adapters and URL helpers
"""
import asyncio
import json

import httpx
import pytest

from sheetcheck.core import ConfigurationException, DatabaseException, TransientTransportException
from sheetcheck.storage import SupabaseObjectStore, SupabaseTableService
from sheetcheck.utils import add_cache_buster, calculate_percentage, detect_file_type, strip_query, to_number

from conftest import mock_client

BASE = "https://project.supabase.co"


class TestHelpers:
    def test_cache_buster(self):
        assert add_cache_buster("https://cdn/a.pdf", token=1) == "https://cdn/a.pdf?cache=1"
        assert add_cache_buster("https://cdn/a.pdf?x=2", token=1) == "https://cdn/a.pdf?x=2&cache=1"
        assert strip_query("https://cdn/a.pdf?cache=1") == "https://cdn/a.pdf"

    def test_file_types(self):
        assert detect_file_type("https://cdn/A.PDF?cache=3") == "pdf"
        assert detect_file_type("scan.jpeg") == "image"
        assert detect_file_type("pages.zip") == "zip"
        assert detect_file_type("notes.docx") == "unknown"

    def test_numbers(self):
        assert to_number("4") == 4
        assert to_number(2.5) == 2.5
        assert calculate_percentage(7, 10) == 70
        assert calculate_percentage(1, 8) == 13
        assert calculate_percentage(5, 200) == 3
        assert calculate_percentage(3, 0) == 0
        with pytest.raises(ValueError):
            to_number(float("nan"))
        with pytest.raises(TypeError):
            to_number(None)


class TestSupabaseTableService:
    """Test cases for the PostgREST client"""

    def make_service(self, handler):
        return SupabaseTableService(BASE, "service-key", client=mock_client(handler))

    def test_select_sends_equality_filters(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "e1"}])

        rows = asyncio.run(self.make_service(handler).select(
            "paper_evaluations", {"test_id": "t1", "subject_id": None, "active": True}
        ))

        request = seen[0]
        assert rows == [{"id": "e1"}]
        assert request.url.path == "/rest/v1/paper_evaluations"
        assert request.url.params["test_id"] == "eq.t1"
        assert request.url.params["subject_id"] == "is.null"
        assert request.url.params["active"] == "eq.true"
        assert request.headers["apikey"] == "service-key"

    def test_update_asks_for_representation(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[{"id": "e1", "version": 2}])

        rows = asyncio.run(self.make_service(handler).update(
            "paper_evaluations", {"version": 2}, {"id": "e1", "version": 1}
        ))

        assert rows == [{"id": "e1", "version": 2}]
        assert seen[0].method == "PATCH"
        assert seen[0].headers["Prefer"] == "return=representation"
        assert json.loads(seen[0].content) == {"version": 2}

    def test_insert_ignores_duplicate_keys(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json=[])

        row = asyncio.run(self.make_service(handler).insert(
            "paper_evaluations", {"test_id": "t1", "student_id": "s1"}, on_conflict=("test_id", "student_id")
        ))

        assert row is None
        assert seen[0].url.params["on_conflict"] == "test_id,student_id"
        assert "resolution=ignore-duplicates" in seen[0].headers["Prefer"]

    def test_error_response_raises(self):
        service = self.make_service(lambda request: httpx.Response(409, json={"message": "duplicate key"}))
        with pytest.raises(DatabaseException) as exc:
            asyncio.run(service.insert("test_grades", {"marks": 1}))
        assert "duplicate key" in str(exc.value.detail)

    def test_requires_configuration(self):
        with pytest.raises(ConfigurationException):
            SupabaseTableService(None, "key")


class TestSupabaseObjectStore:
    """Test cases for the Storage REST client"""

    def make_store(self, handler, **kwargs):
        kwargs.setdefault("read_retry_delay", 0)
        return SupabaseObjectStore(BASE, "service-key", bucket="files", client=mock_client(handler), **kwargs)

    def test_put_returns_cache_busted_public_url(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Key": "files/a/b.pdf"})

        store = self.make_store(handler)
        url = asyncio.run(store.put("a/b.pdf", b"%PDF", "application/pdf"))

        assert url.startswith(f"{BASE}/storage/v1/object/public/files/a/b.pdf?cache=")
        assert seen[0].headers["x-upsert"] == "true"
        assert store.path_from_url(url) == "a/b.pdf"
        assert store.path_from_url("https://elsewhere/a/b.pdf") is None

    def test_get_retries_until_visible(self):
        responses = [httpx.Response(404), httpx.Response(404), httpx.Response(200, content=b"data")]

        def handler(request):
            assert request.headers["Cache-Control"].startswith("no-cache")
            return responses.pop(0)

        store = self.make_store(handler, read_retries=3)
        data = asyncio.run(store.get(f"{BASE}/storage/v1/object/public/files/a.zip?cache=1"))
        assert data == b"data"

    def test_get_gives_up_after_retries(self):
        store = self.make_store(lambda request: httpx.Response(404), read_retries=1)
        with pytest.raises(TransientTransportException) as exc:
            asyncio.run(store.get(f"{BASE}/storage/v1/object/public/files/a.zip"))
        assert "Failed to download" in str(exc.value.detail)

    def test_get_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        with pytest.raises(TransientTransportException) as exc:
            asyncio.run(self.make_store(handler).get("https://cdn/a.png?cache=1"))
        assert str(exc.value.detail).startswith("Timeout while downloading https://cdn/a.png")
