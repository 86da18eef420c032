"""
API tests running the FastAPI app in-process against a temporary database.
"""

import logging

import httpx
import pytest

from link_tracker.api.endpoints import get_ip_info_service
from link_tracker.core.setting import settings
from link_tracker.main import app
from link_tracker.services.ip_info_service import IPInfoService
from tests.conftest import CHROME_UA, PUBLIC_IP


async def create_link(client, target_url="example.com", note=None) -> dict:
    response = await client.post("/api/tracker/generate", json={"targetUrl": target_url, "note": note})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def immediate_redirect(monkeypatch):
    monkeypatch.setattr(settings, "GEOLOCATION_CAPTURE_ENABLED", False)


class TestCreateLink:
    """Test the link generation endpoint."""

    @pytest.mark.asyncio
    async def test_create_link(self, client):
        """Test that generation returns the normalized target and both URLs."""
        data = await create_link(client, "example.com", note="spring")

        assert data["success"] is True
        assert data["targetUrl"] == "https://example.com"
        assert len(data["linkId"]) == 8
        assert data["trackingUrl"] == f"{settings.BASE_URL}/track/{data['linkId']}"
        assert data["adminUrl"] == f"{settings.BASE_URL}/admin/{data['linkId']}"
        assert "createdAt" in data

    @pytest.mark.asyncio
    async def test_creator_ip_resolved_from_loopback(self, client):
        """Test that a loopback creator is stored as the annotated public address."""
        data = await create_link(client)
        stats = (await client.get(f"/api/tracker/stats/{data['linkId']}")).json()
        assert stats["link"]["creatorIp"] == f"{PUBLIC_IP} (your public IP)"

    @pytest.mark.asyncio
    async def test_snake_case_body_accepted(self, client):
        """Test that snake_case field names are accepted alongside camelCase."""
        response = await client.post("/api/tracker/generate", json={"target_url": "http://example.com"})
        assert response.status_code == 201
        assert response.json()["targetUrl"] == "http://example.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{"targetUrl": ""}, {"targetUrl": "   "}, {}])
    async def test_empty_target_rejected(self, client, body):
        """Test that a missing or blank target answers 400 and stores nothing."""
        response = await client.post("/api/tracker/generate", json=body)
        assert response.status_code == 400

        links = (await client.get("/api/tracker/links")).json()
        assert links["total"] == 0


class TestTracking:
    """Test the tracking redirect route."""

    @pytest.mark.asyncio
    async def test_immediate_redirect(self, client, immediate_redirect):
        """Test the plain 302 when the capture page is disabled."""
        link_id = (await create_link(client))["linkId"]

        response = await client.get(f"/track/{link_id}", headers={"X-Forwarded-For": "203.0.113.5"})

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com"

    @pytest.mark.asyncio
    async def test_capture_page_embeds_visit(self, client):
        """Test that the capture page carries the recorded visit id and target."""
        link_id = (await create_link(client))["linkId"]

        response = await client.get(f"/track/{link_id}", headers={"X-Forwarded-For": "203.0.113.5"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        visit_id = (await client.get("/api/tracker/visits")).json()["visits"][0]["id"]
        assert f"var visitId = {visit_id};" in response.text
        assert '"https://example.com"' in response.text
        assert "/api/tracker/geolocation" in response.text
        assert "navigator.geolocation" in response.text

    @pytest.mark.asyncio
    async def test_capture_page_escapes_target(self, client):
        """Test that markup in the target cannot break out of the page."""
        link_id = (await create_link(client, "example.com/?q=</script><b>"))["linkId"]
        response = await client.get(f"/track/{link_id}")
        assert "</script><b>" not in response.text

    @pytest.mark.asyncio
    async def test_unknown_link_falls_back(self, client):
        """Test that unknown ids redirect to the fallback without recording."""
        response = await client.get("/track/deadbeef")

        assert response.status_code == 302
        assert response.headers["location"] == settings.FALLBACK_URL
        assert (await client.get("/api/tracker/visits")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_loopback_visitor_recorded_with_public_ip(self, client, immediate_redirect):
        """Test that a loopback visitor is recorded as the server's public address."""
        link_id = (await create_link(client))["linkId"]
        await client.get(f"/track/{link_id}")

        visit = (await client.get("/api/tracker/visits")).json()["visits"][0]
        assert visit["visitorIp"] == f"{PUBLIC_IP} (your public IP)"
        assert visit["ipType"] == "Local/Self"


class TestStatsAndDelete:
    """Test statistics, listings and deletion endpoints."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, client, immediate_redirect):
        """Test create, visit, stats and cascading delete in sequence."""
        created = await create_link(client, "example.com")
        link_id = created["linkId"]
        assert created["targetUrl"] == "https://example.com"

        await client.get(
            f"/track/{link_id}",
            headers={"X-Forwarded-For": "203.0.113.5", "User-Agent": CHROME_UA}
        )

        stats = (await client.get(f"/api/tracker/stats/{link_id}")).json()
        assert stats["statistics"]["totalVisits"] == 1
        assert stats["statistics"]["uniqueVisitors"] == 1
        assert stats["statistics"]["visitsToday"] == 1
        assert stats["statistics"]["lastVisit"] is not None
        assert stats["visits"][0]["browser"] == "Chrome"
        assert stats["visits"][0]["ipType"] == "Public IP"
        assert stats["visits"][0]["referer"] is None

        deleted = await client.delete(f"/api/tracker/delete/{link_id}")
        assert deleted.status_code == 200
        assert deleted.json()["deletedVisits"] == 1

        assert (await client.get(f"/api/tracker/stats/{link_id}")).status_code == 404
        assert (await client.get("/api/tracker/visits")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_stats_and_delete(self, client):
        """Test that stats and delete answer 404 for unknown ids."""
        assert (await client.get("/api/tracker/stats/deadbeef")).status_code == 404
        assert (await client.delete("/api/tracker/delete/deadbeef")).status_code == 404

    @pytest.mark.asyncio
    async def test_links_listing(self, client, immediate_redirect):
        """Test the link listing with visit and unique visitor counts."""
        link_id = (await create_link(client, note="newsletter"))["linkId"]
        for ip in ["203.0.113.5", "203.0.113.5", "203.0.113.6"]:
            await client.get(f"/track/{link_id}", headers={"X-Forwarded-For": ip})

        data = (await client.get("/api/tracker/links")).json()

        assert data["total"] == 1
        assert data["links"][0]["note"] == "newsletter"
        assert data["links"][0]["visitsCount"] == 3
        assert data["links"][0]["uniqueVisitors"] == 2

    @pytest.mark.asyncio
    async def test_visits_limit(self, client, immediate_redirect):
        """Test that the visit listing honours the limit parameter."""
        link_id = (await create_link(client))["linkId"]
        for i in range(4):
            await client.get(f"/track/{link_id}", headers={"X-Forwarded-For": f"203.0.113.{i}"})

        data = (await client.get("/api/tracker/visits", params={"limit": 2})).json()
        assert data["total"] == 2

    @pytest.mark.asyncio
    async def test_visit_detail_and_delete(self, client, immediate_redirect):
        """Test visit detail enrichment and visit deletion."""
        link_id = (await create_link(client, note="ads"))["linkId"]
        await client.get(f"/track/{link_id}", headers={"X-Real-IP": "10.0.0.1", "Referer": "https://ref.test/"})
        visit_id = (await client.get("/api/tracker/visits")).json()["visits"][0]["id"]

        detail = (await client.get(f"/api/tracker/visit/{visit_id}")).json()
        assert detail["linkNote"] == "ads"
        assert detail["ipType"] == "Local network"
        assert detail["referer"] == "https://ref.test/"

        assert (await client.delete(f"/api/tracker/visit/{visit_id}")).status_code == 200
        assert (await client.get(f"/api/tracker/visit/{visit_id}")).status_code == 404


class TestGeolocation:
    """Test the best-effort geolocation report endpoint."""

    @pytest.mark.asyncio
    async def test_merge_after_capture_page(self, client):
        """Test that a report after a redirect fills the visit coordinates."""
        link_id = (await create_link(client))["linkId"]
        await client.get(f"/track/{link_id}", headers={"X-Forwarded-For": "203.0.113.5"})
        visit_id = (await client.get("/api/tracker/visits")).json()["visits"][0]["id"]

        response = await client.post(
            "/api/tracker/geolocation",
            json={"visitId": visit_id, "latitude": 48.85, "longitude": 2.35, "accuracy": 12.5}
        )
        assert response.status_code == 200
        assert response.json() == {"success": True}

        detail = (await client.get(f"/api/tracker/visit/{visit_id}")).json()
        assert (detail["latitude"], detail["longitude"], detail["accuracy"]) == (48.85, 2.35, 12.5)

    @pytest.mark.asyncio
    async def test_unknown_visit(self, client):
        """Test that a report for an unknown visit answers success false."""
        response = await client.post("/api/tracker/geolocation", json={"visitId": 999, "latitude": 1, "longitude": 2})
        assert response.status_code == 200
        assert response.json() == {"success": False}

    @pytest.mark.asyncio
    async def test_missing_visit_id(self, client):
        """Test that a report without a visit id answers success false."""
        response = await client.post("/api/tracker/geolocation", json={"latitude": 1, "longitude": 2})
        assert response.json() == {"success": False}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"visitId": "abc", "latitude": 1, "longitude": 2},
        {"visitId": 1, "latitude": "north", "longitude": 2},
        {"visitId": 1, "latitude": 1, "longitude": 2, "accuracy": [5]},
        ["not", "an", "object"],
    ])
    async def test_malformed_report(self, client, body):
        """Test that reports with unparseable fields answer 200 with success false."""
        response = await client.post("/api/tracker/geolocation", json=body)
        assert response.status_code == 200
        assert response.json() == {"success": False}

    @pytest.mark.asyncio
    async def test_unparseable_body(self, client):
        """Test that a body that is not JSON answers 200 with success false."""
        response = await client.post(
            "/api/tracker/geolocation",
            content=b"{not json",
            headers={"Content-Type": "application/json"}
        )
        assert response.status_code == 200
        assert response.json() == {"success": False}


class TestIPInfo:
    """Test the geo-IP lookup endpoint."""

    @pytest.mark.asyncio
    async def test_lookup_failure_degrades(self, client):
        """Test that a failing upstream degrades to the local classification."""
        failing = IPInfoService(
            base_url="http://ipwho.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        app.dependency_overrides[get_ip_info_service] = lambda: failing

        response = await client.get("/api/tracker/ipinfo/172.20.5.5")

        assert response.status_code == 200
        assert response.json()["type"] == "Local network"

    @pytest.mark.asyncio
    async def test_local_address(self, client):
        """Test that local addresses are answered without a lookup."""
        response = await client.get("/api/tracker/ipinfo/127.0.0.1")
        assert response.json()["type"] == "Local/Self"


@pytest.mark.asyncio
async def test_health(client):
    """Test the health check endpoint."""
    assert (await client.get("/health")).json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_request_log_uses_proxy_address(client, caplog):
    """Test that the request log line reports the proxy-announced client address."""
    with caplog.at_level(logging.INFO, logger="link_tracker"):
        response = await client.get(
            "/health",
            headers={"X-Forwarded-For": " , 10.0.0.1", "X-Real-IP": "203.0.113.77"}
        )

    assert "X-Process-Time" in response.headers
    assert "GET /health 200" in caplog.text
    assert "IP:203.0.113.77" in caplog.text
