import pytest
from unittest.mock import MagicMock, patch

from nivuus_agent.core.errors import NetworkError
from nivuus_agent.tools.search import format_results, tool_web_search

def fake_ddgs(results=None, error=None):
    instance = MagicMock()
    if error:
        instance.text.side_effect = error
    else:
        instance.text.return_value = results
    ddgs_cls = MagicMock()
    ddgs_cls.return_value.__enter__.return_value = instance
    return ddgs_cls, instance

@pytest.mark.asyncio
async def test_results_are_normalized():
    raw = [{"title": "Nginx docs", "href": "https://nginx.org", "body": "Reference"}]
    ddgs_cls, instance = fake_ddgs(raw)
    with patch("nivuus_agent.tools.search.DDGS", ddgs_cls):
        results = await tool_web_search("nginx reload", max_results=5)
    assert results == [{"title": "Nginx docs", "url": "https://nginx.org", "snippet": "Reference"}]
    instance.text.assert_called_once_with("nginx reload", max_results=5)

@pytest.mark.asyncio
async def test_empty_results():
    ddgs_cls, _ = fake_ddgs([])
    with patch("nivuus_agent.tools.search.DDGS", ddgs_cls):
        assert await tool_web_search("zzzz") == []

@pytest.mark.asyncio
async def test_failures_raise_network_error_after_retries():
    ddgs_cls, instance = fake_ddgs(error=RuntimeError("blocked"))
    with patch("nivuus_agent.tools.search.DDGS", ddgs_cls):
        with pytest.raises(NetworkError, match="after 3 attempts"):
            await tool_web_search("anything", retry_delay=0)
    assert instance.text.call_count == 3

def test_format_results_fallbacks():
    assert format_results([{"url": "u", "content": "c"}]) == [{"title": "No Title", "url": "u", "snippet": "c"}]
