"""Gasless relayer: Safe signature marking, MultiSend encoding and submission"""
import httpx
import pytest
from eth_utils import keccak, to_bytes

from polytrade.core.exceptions import RelayerUnavailableError
from polytrade.core.services.relayer.relayer_client import (
    RelayerClient,
    RelayTransaction,
    _adjust_safe_signature,
    encode_multisend,
)

from tests.fixtures.mocks import OTHER_OWNER, OWNER, make_companion


class TestSafeSignature:
    @pytest.mark.parametrize("v,expected", [(0, 31), (1, 32), (27, 31), (28, 32)])
    def test_v_is_shifted(self, v, expected) -> None:
        signature = "0x" + "11" * 64 + f"{v:02x}"
        adjusted = to_bytes(hexstr=_adjust_safe_signature(signature))
        assert adjusted[-1] == expected
        assert adjusted[:64] == b"\x11" * 64


class TestMultisend:
    def test_selector_and_packing(self) -> None:
        calldata = to_bytes(hexstr=encode_multisend([
            RelayTransaction(to=OWNER, data="0xabcd"),
            RelayTransaction(to=OTHER_OWNER, data="0x"),
        ]))
        assert calldata[:4] == keccak(text="multiSend(bytes)")[:4]
        # two packed calls: 85 byte header each plus 2 bytes of data
        packed_length = int.from_bytes(calldata[36:68], "big")
        assert packed_length == 85 * 2 + 2


class TestRelayerClient:
    def build(self, handler) -> RelayerClient:
        companion = make_companion(1.0)
        return RelayerClient(
            companion,
            base_url="https://relayer.test",
            client=httpx.AsyncClient(base_url="https://relayer.test", transport=httpx.MockTransport(handler)),
            poll_interval=0,
            max_polls=3,
        )

    async def test_wait_returns_mined_hash(self) -> None:
        states = iter(["STATE_NEW", "STATE_MINED"])

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"state": next(states), "transactionHash": "0xmined"}])

        assert await self.build(handler).wait_for_transaction("tx-1") == "0xmined"

    async def test_wait_raises_on_failure(self) -> None:
        client = self.build(lambda request: httpx.Response(200, json={"state": "STATE_FAILED"}))
        with pytest.raises(RelayerUnavailableError):
            await client.wait_for_transaction("tx-1")

    async def test_wait_gives_up(self) -> None:
        client = self.build(lambda request: httpx.Response(200, json={"state": "STATE_NEW"}))
        with pytest.raises(RelayerUnavailableError):
            await client.wait_for_transaction("tx-1")

    async def test_execute_requires_transactions(self) -> None:
        client = self.build(lambda request: httpx.Response(200))
        with pytest.raises(ValueError):
            await client.execute(None, [])

    async def test_deployed_check(self) -> None:
        client = self.build(lambda request: httpx.Response(200, json={"deployed": True}))
        assert await client.get_deployed(OWNER) is True
