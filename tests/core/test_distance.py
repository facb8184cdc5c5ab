# tests/core/test_distance.py
"""
Тесты оракула расстояний.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import DROP, PICKUP
from src.core.geo.distance import GoogleDistanceOracle, HaversineDistanceOracle


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _matrix(status: str = "OK", distance_m: int = 12_400, duration_s: int = 1_500) -> dict:
    element = {"status": status}
    if status == "OK":
        element["distance"] = {"value": distance_m}
        element["duration"] = {"value": duration_s}
    return {"status": "OK", "rows": [{"elements": [element]}]}


class TestHaversineDistanceOracle:
    """Тесты оценки по прямой."""

    @pytest.mark.asyncio
    async def test_road_factor_applied(self) -> None:
        straight = await HaversineDistanceOracle(road_factor=1.0).estimate(PICKUP, DROP)
        road = await HaversineDistanceOracle(road_factor=1.3).estimate(PICKUP, DROP)

        assert road.distance_km == pytest.approx(straight.distance_km * 1.3, abs=0.02)
        assert road.source == "haversine"

    @pytest.mark.asyncio
    async def test_duration_from_speed(self) -> None:
        estimate = await HaversineDistanceOracle(road_factor=1.0, average_speed_kmh=60.0).estimate(PICKUP, DROP)
        assert estimate.duration_minutes == pytest.approx(estimate.distance_km, abs=0.1)


class TestGoogleDistanceOracle:
    """Тесты Google Distance Matrix."""

    @pytest.mark.asyncio
    async def test_parses_response(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(200, json=_matrix())

        oracle = GoogleDistanceOracle(api_key="key", timeout=1.0, client=_client(handler))
        estimate = await oracle.estimate(PICKUP, DROP)
        await oracle.close()

        assert estimate.distance_km == 12.4
        assert estimate.duration_minutes == 25.0
        assert estimate.source == "google"
        assert seen["origins"] == "19.07,72.87"
        assert seen["key"] == "key"

    @pytest.mark.asyncio
    async def test_zero_results_falls_back(self) -> None:
        oracle = GoogleDistanceOracle(
            api_key="key", timeout=1.0,
            client=_client(lambda request: httpx.Response(200, json=_matrix("ZERO_RESULTS"))),
        )
        estimate = await oracle.estimate(PICKUP, DROP)
        assert estimate.source == "haversine"

    @pytest.mark.asyncio
    async def test_transport_error_falls_back(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        oracle = GoogleDistanceOracle(api_key="key", timeout=1.0, client=_client(handler))
        estimate = await oracle.estimate(PICKUP, DROP)
        assert estimate.source == "haversine"

    @pytest.mark.asyncio
    async def test_without_key_uses_fallback(self) -> None:
        calls = []
        oracle = GoogleDistanceOracle(
            api_key="", timeout=1.0,
            client=_client(lambda request: calls.append(request) or httpx.Response(200, json=_matrix())),
        )
        estimate = await oracle.estimate(PICKUP, DROP)

        assert estimate.source == "haversine"
        assert calls == []
