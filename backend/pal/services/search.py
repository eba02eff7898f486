import logging
from dataclasses import dataclass, asdict

import httpx

from pal.core.errors import WebSearchError

logger = logging.getLogger(__name__)

SERPAPI_URL = "https://serpapi.com/search"
BING_URL = "https://api.bing.microsoft.com/v7.0/search"


@dataclass
class WebResult:
    title: str
    snippet: str
    link: str
    source: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class WebContext:
    context: str
    sources: list[WebResult]


class WebSearchService:
    """SerpAPI (Google) first, Bing second; unavailable without either key."""

    def __init__(
        self,
        serpapi_key: str | None = None,
        bing_key: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.serpapi_key = serpapi_key
        self.bing_key = bing_key
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout

    def is_available(self) -> bool:
        return bool(self.serpapi_key or self.bing_key)

    async def search_web(self, query: str, max_results: int = 3) -> list[WebResult]:
        try:
            if self.serpapi_key:
                return await self.search_with_serpapi(query, max_results)
            if self.bing_key:
                return await self.search_with_bing(query, max_results)
            logger.warning("No web search API keys configured")
            return []
        except Exception:
            logger.exception("Web search failed")
            return []

    async def search_with_serpapi(self, query: str, max_results: int = 3) -> list[WebResult]:
        try:
            resp = await self._client.get(
                SERPAPI_URL,
                params={
                    "q": query,
                    "api_key": self.serpapi_key,
                    "engine": "google",
                    "num": max_results,
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except Exception as e:
            logger.warning("SerpAPI search error", exc_info=True)
            raise WebSearchError("SerpAPI search failed") from e

        return [
            WebResult(
                title=r.get("title") or "",
                snippet=r.get("snippet") or "",
                link=r.get("link") or "",
                source="google",
            )
            for r in (data.get("organic_results") or [])[:max_results]
        ]

    async def search_with_bing(self, query: str, max_results: int = 3) -> list[WebResult]:
        try:
            resp = await self._client.get(
                BING_URL,
                params={"q": query, "count": max_results, "responseFilter": "Webpages"},
                headers={"Ocp-Apim-Subscription-Key": self.bing_key},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except Exception as e:
            logger.warning("Bing search error", exc_info=True)
            raise WebSearchError("Bing search failed") from e

        pages = (data.get("webPages") or {}).get("value") or []
        return [
            WebResult(
                title=r.get("name") or "",
                snippet=r.get("snippet") or "",
                link=r.get("url") or "",
                source="bing",
            )
            for r in pages[:max_results]
        ]

    async def get_web_context(self, query: str, max_results: int = 3) -> WebContext | None:
        results = await self.search_web(query, max_results)
        if not results:
            return None

        context = "\n\n".join(
            f"[Web Result {i}] {r.title}\n{r.snippet}\nSource: {r.link}"
            for i, r in enumerate(results, start=1)
        )
        return WebContext(context=context, sources=results)

    async def aclose(self) -> None:
        await self._client.aclose()
