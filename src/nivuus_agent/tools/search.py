import asyncio
from typing import Dict, List

from ddgs import DDGS

from ..core.errors import NetworkError
from ..utils.logging import Icons, pretty_log

SEARCH_ATTEMPTS = 3
SEARCH_TIMEOUT = 15


def format_results(raw_results: List[Dict]) -> List[Dict[str, str]]:
    results = []
    for res in raw_results:
        results.append({
            "title": res.get("title", "No Title"),
            "url": res.get("href", res.get("url", "")),
            "snippet": res.get("body", res.get("content", "")),
        })
    return results


async def tool_web_search(query: str, max_results: int = 5, retry_delay: float = 1.0) -> List[Dict[str, str]]:
    pretty_log("Web Search", query, icon=Icons.TOOL_SEARCH)

    def run():
        with DDGS(timeout=SEARCH_TIMEOUT) as ddgs:
            return list(ddgs.text(query, max_results=max_results) or [])

    last_error = None
    for attempt in range(SEARCH_ATTEMPTS):
        try:
            raw_results = await asyncio.to_thread(run)
            return format_results(raw_results)[:max_results]
        except Exception as e:
            last_error = e
            if attempt < SEARCH_ATTEMPTS - 1:
                pretty_log("Search Retry", f"{type(e).__name__}: {e}", level="WARNING", icon=Icons.RETRY)
                await asyncio.sleep(retry_delay)

    raise NetworkError(f"Web search failed after {SEARCH_ATTEMPTS} attempts: {type(last_error).__name__}") from last_error
