"""Tests for the Finnomena fund NAV client (HTTP mocked)."""

import datetime as dt
from unittest.mock import patch

import httpx
import pytest

from services.finnomena import FinnomenaClient

FUND_LIST = [
    {"id": "F-SP500", "short_code": "K-US500X-A(A)"},
    {"id": "F-SCB", "short_code": "scbs&p500"},
    {"id": "F-GOLD", "short_code": "KT-GOLD"},
    {"id": None, "short_code": "BROKEN"},
]


def fake_get_json(responses):
    def _get_json(path):
        value = responses[path]
        if isinstance(value, Exception):
            raise value
        return value
    return _get_json


@pytest.fixture
def client():
    return FinnomenaClient(base_url="https://example.test")


class TestFundMap:

    def test_codes_indexed_with_and_without_class_suffix(self, client):
        with patch.object(FinnomenaClient, "_get_json", side_effect=fake_get_json({
            "/fn3/api/fund/public/list": FUND_LIST,
        })):
            fund_map = client.get_fund_map()

        assert fund_map["K-US500X-A(A)"] == "F-SP500"
        assert fund_map["K-US500X-A"] == "F-SP500"
        assert fund_map["SCBS&P500"] == "F-SCB"
        assert "BROKEN" not in fund_map

    def test_list_is_fetched_once_until_cleared(self, client):
        with patch.object(FinnomenaClient, "_get_json", return_value=FUND_LIST) as mock_get:
            client.get_fund_map()
            client.get_fund_map()
            assert mock_get.call_count == 1

            client.clear_fund_cache()
            client.get_fund_map()
            assert mock_get.call_count == 2

    @pytest.mark.parametrize("code,expected", [
        ("k-us500x-a", "F-SP500"),
        (" KT-GOLD ", "F-GOLD"),
        ("KT-GOLD-RMF", "F-GOLD"),
        ("SCBS&P", "F-SCB"),
        ("UNKNOWN", None),
    ])
    def test_resolve(self, client, code, expected):
        with patch.object(FinnomenaClient, "_get_json", return_value=FUND_LIST):
            assert client.resolve_fund_id(code) == expected


class TestFetchFundNav:

    def test_latest_nav(self, client):
        responses = {
            "/fn3/api/fund/public/list": FUND_LIST,
            "/fn3/api/fund/v2/public/funds/F-GOLD/latest": {
                "status": True,
                "data": {"value": "15.4321", "date": "2024-03-01T00:00:00.000Z", "d_change": -0.12},
            },
        }
        with patch.object(FinnomenaClient, "_get_json", side_effect=fake_get_json(responses)):
            nav = client.fetch_fund_nav("KT-GOLD")

        assert nav.fund_code == "KT-GOLD"
        assert nav.nav == 15.4321
        assert nav.date == dt.date(2024, 3, 1)
        assert nav.d_change == -0.12
        assert nav.fund_id == "F-GOLD"

    def test_missing_value_is_none(self, client):
        responses = {
            "/fn3/api/fund/public/list": FUND_LIST,
            "/fn3/api/fund/v2/public/funds/F-GOLD/latest": {"status": True, "data": {}},
        }
        with patch.object(FinnomenaClient, "_get_json", side_effect=fake_get_json(responses)):
            assert client.fetch_fund_nav("KT-GOLD") is None

    def test_unknown_fund_is_none(self, client):
        with patch.object(FinnomenaClient, "_get_json", return_value=FUND_LIST):
            assert client.fetch_fund_nav("NOPE") is None

    def test_http_error_is_none(self, client):
        request = httpx.Request("GET", "https://example.test")
        error = httpx.HTTPStatusError("503", request=request, response=httpx.Response(503, request=request))
        responses = {
            "/fn3/api/fund/public/list": FUND_LIST,
            "/fn3/api/fund/v2/public/funds/F-GOLD/latest": error,
        }
        with patch.object(FinnomenaClient, "_get_json", side_effect=fake_get_json(responses)):
            assert client.fetch_fund_nav("KT-GOLD") is None


class TestHttp:

    def test_get_json_uses_base_url_and_raises_for_status(self):
        def handler(request):
            if request.url.path == "/ok":
                return httpx.Response(200, json={"hello": "world"})
            return httpx.Response(404)

        client = FinnomenaClient(base_url="https://example.test")
        client._client = httpx.Client(base_url="https://example.test", transport=httpx.MockTransport(handler))

        try:
            assert client._get_json("/ok") == {"hello": "world"}
            with pytest.raises(httpx.HTTPStatusError):
                client._get_json("/missing")
        finally:
            client.close()
