"""
Tests for the SerpAPI / Bing web search client, using httpx.MockTransport.
"""
import httpx
import pytest

from pal.core.errors import WebSearchError
from pal.services.search import WebSearchService, SERPAPI_URL, BING_URL

SERPAPI_PAYLOAD = {
    "organic_results": [
        {"title": "Pal FAQ", "snippet": "Pal answers questions.", "link": "https://example.com/faq"},
        {"title": "Pal blog", "snippet": "Release notes.", "link": "https://example.com/blog"},
        {"title": "Pal docs", "snippet": "Setup guide.", "link": "https://example.com/docs"},
        {"title": "Extra", "snippet": "Ignored.", "link": "https://example.com/extra"},
    ]
}

BING_PAYLOAD = {
    "webPages": {
        "value": [
            {"name": "Bing result", "snippet": "From Bing.", "url": "https://example.org/a"},
        ]
    }
}


def _service(handler, **kwargs) -> tuple[WebSearchService, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return WebSearchService(client=client, **kwargs), seen


class TestAvailability:

    def test_unavailable_without_keys(self):
        assert not WebSearchService().is_available()

    def test_available_with_either_key(self):
        assert WebSearchService(serpapi_key="serp").is_available()
        assert WebSearchService(bing_key="bing").is_available()

    async def test_no_keys_returns_empty_results(self):
        service, seen = _service(lambda r: httpx.Response(200, json={}))
        assert await service.search_web("pal") == []
        assert seen == []


class TestSerpApi:

    async def test_results_are_parsed_and_capped(self):
        service, seen = _service(lambda r: httpx.Response(200, json=SERPAPI_PAYLOAD), serpapi_key="serp")

        results = await service.search_web("pal", max_results=3)

        assert [r.title for r in results] == ["Pal FAQ", "Pal blog", "Pal docs"]
        assert all(r.source == "google" for r in results)
        request = seen[0]
        assert str(request.url).startswith(SERPAPI_URL)
        assert request.url.params["q"] == "pal"
        assert request.url.params["engine"] == "google"
        assert request.url.params["api_key"] == "serp"

    async def test_serpapi_is_preferred_over_bing(self):
        service, seen = _service(lambda r: httpx.Response(200, json=SERPAPI_PAYLOAD), serpapi_key="serp", bing_key="bing")

        await service.search_web("pal")

        assert len(seen) == 1
        assert str(seen[0].url).startswith(SERPAPI_URL)

    async def test_http_error_raises_web_search_error(self):
        service, _ = _service(lambda r: httpx.Response(500, json={"error": "down"}), serpapi_key="serp")

        with pytest.raises(WebSearchError):
            await service.search_with_serpapi("pal")

    async def test_search_web_swallows_provider_errors(self):
        service, _ = _service(lambda r: httpx.Response(500), serpapi_key="serp")
        assert await service.search_web("pal") == []


class TestBing:

    async def test_results_are_parsed(self):
        service, seen = _service(lambda r: httpx.Response(200, json=BING_PAYLOAD), bing_key="bing")

        results = await service.search_web("pal")

        assert len(results) == 1
        assert results[0].to_dict() == {
            "title": "Bing result",
            "snippet": "From Bing.",
            "link": "https://example.org/a",
            "source": "bing",
        }
        assert str(seen[0].url).startswith(BING_URL)
        assert seen[0].headers["Ocp-Apim-Subscription-Key"] == "bing"

    async def test_missing_web_pages_gives_no_results(self):
        service, _ = _service(lambda r: httpx.Response(200, json={}), bing_key="bing")
        assert await service.search_web("pal") == []


class TestWebContext:

    async def test_context_formatting(self):
        service, _ = _service(lambda r: httpx.Response(200, json=SERPAPI_PAYLOAD), serpapi_key="serp")

        web = await service.get_web_context("pal", max_results=2)

        assert web.context == (
            "[Web Result 1] Pal FAQ\nPal answers questions.\nSource: https://example.com/faq"
            "\n\n"
            "[Web Result 2] Pal blog\nRelease notes.\nSource: https://example.com/blog"
        )
        assert len(web.sources) == 2

    async def test_no_results_gives_none(self):
        service, _ = _service(lambda r: httpx.Response(200, json={"organic_results": []}), serpapi_key="serp")
        assert await service.get_web_context("pal") is None
