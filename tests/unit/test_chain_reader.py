"""Read-only chain access: RPC rotation on rate limits"""
from unittest.mock import AsyncMock

import pytest

from polytrade.core.services.chain.chain_reader import ChainReader


@pytest.fixture
def reader() -> ChainReader:
    reader = ChainReader(rpc_urls=["https://rpc-a.test", "https://rpc-b.test"])
    reader.max_attempts = 3
    reader.backoff_seconds = 0
    return reader


class TestRetry:
    async def test_rate_limit_rotates_rpc(self, reader) -> None:
        call = AsyncMock(side_effect=[Exception("429 Too Many Requests"), 5])

        assert await reader._with_retry("balanceOf", call) == 5
        assert call.await_count == 2
        assert reader._rpc_index == 1

    async def test_other_errors_are_not_retried(self, reader) -> None:
        call = AsyncMock(side_effect=ValueError("execution reverted"))

        with pytest.raises(ValueError):
            await reader._with_retry("allowance", call)
        assert call.await_count == 1
        assert reader._rpc_index == 0

    async def test_gives_up_after_max_attempts(self, reader) -> None:
        call = AsyncMock(side_effect=Exception("rate limit exceeded"))

        with pytest.raises(Exception, match="rate limit"):
            await reader._with_retry("getCode", call)
        assert call.await_count == 3
