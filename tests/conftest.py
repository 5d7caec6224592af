from __future__ import annotations

import hashlib
from collections import defaultdict
from pathlib import Path

import httpx
import pytest
from eth_abi import encode
from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.providers.eth_tester import AsyncEthereumTesterProvider

CONTRACT_ADDRESS = "0x" + "ab" * 20
OWNER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32


def _file_part(body: bytes) -> bytes:
    # single-field multipart: headers, blank line, data, closing boundary
    data = body.split(b"\r\n\r\n", 1)[1]
    return data.rsplit(b"\r\n--", 1)[0]


class FakeIpfs:
    """In-memory Kubo /api/v0/add served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.calls: list[httpx.Request] = []
        self.contents: dict[str, bytes] = {}
        self.error: Exception | None = None
        self.response: httpx.Response | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        if self.response is not None:
            return self.response

        data = _file_part(request.content)
        cid = "Qm" + hashlib.sha256(data).hexdigest()[:44]
        self.contents[cid] = data
        return httpx.Response(200, json={"Name": "file", "Hash": cid, "Size": str(len(data))})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _returning_contract(returned: bytes) -> bytes:
    # creation code: copy the runtime out and return it; the runtime
    # copies `returned` out of its own code and returns it for any call
    assert len(returned) + 12 < 0x100
    runtime = bytes([0x60, len(returned), 0x60, 0x0C, 0x60, 0x00, 0x39, 0x60, len(returned), 0x60, 0x00, 0xF3]) + returned
    head = bytes([0x60, len(runtime), 0x60, 0x0C, 0x60, 0x00, 0x39, 0x60, len(runtime), 0x60, 0x00, 0xF3])
    return head + runtime


async def tester_chain(owned: list[str], *funded) -> tuple[AsyncWeb3, int, str]:
    """
    In-process eth-tester chain with a contract that answers every call with
    `owned` encoded as a `string[]`. Accounts in `funded` receive 1 ether.

    Returns the web3 instance, the chain id and the contract address.
    """
    w3 = AsyncWeb3(AsyncEthereumTesterProvider())
    (coinbase, *_) = await w3.eth.accounts
    code = _returning_contract(encode(["string[]"], [owned]))
    tx_hash = await w3.eth.send_transaction({"from": coinbase, "data": Web3.to_hex(code)})
    address = (await w3.eth.wait_for_transaction_receipt(tx_hash))["contractAddress"]
    for account in funded:
        tx_hash = await w3.eth.send_transaction({"from": coinbase, "to": account.address, "value": 10**18})
        await w3.eth.wait_for_transaction_receipt(tx_hash)
    return w3, await w3.eth.chain_id, address


tester_chain.__test__ = False  # helper, not a test; keeps pytest from collecting it where imported


class FakeCIDsOwners:
    """In-memory stand-in for the CIDsOwners contract binding."""

    def __init__(self) -> None:
        self.owned: dict[str, list[str]] = defaultdict(list)
        self.sent: list[tuple[str, str, int]] = []
        self.timeouts: list[float] = []
        self._pending: dict[bytes, tuple[str, str]] = {}
        self._nonce = 0
        self.send_error: Exception | None = None
        self.wait_error: Exception | None = None
        self.call_error: Exception | None = None
        self.no_receipt = False
        self.revert = False

    async def send_register(self, cid: str, account, chain_id: int) -> HexBytes:
        if self.send_error is not None:
            raise self.send_error
        self._nonce += 1
        tx_hash = Web3.keccak(text=f"{account.address}:{chain_id}:{self._nonce}:{cid}")
        self.sent.append((cid, account.address, chain_id))
        self._pending[bytes(tx_hash)] = (account.address, cid)
        return tx_hash

    async def wait_for_receipt(self, tx_hash: bytes, timeout: float):
        self.timeouts.append(timeout)
        if self.wait_error is not None:
            raise self.wait_error
        if self.no_receipt:
            return None
        owner, cid = self._pending.pop(bytes(tx_hash))
        if not self.revert:
            self.owned[owner].append(cid)
        return {
            "transactionHash": HexBytes(tx_hash),
            "blockNumber": self._nonce,
            "blockHash": HexBytes(b"\x01" * 32),
            "status": 0 if self.revert else 1,
            "gasUsed": 45000,
        }

    async def get_owned_cids(self, owner: str) -> list[str]:
        if self.call_error is not None:
            raise self.call_error
        return list(self.owned[owner])


@pytest.fixture
def fake_ipfs() -> FakeIpfs:
    return FakeIpfs()


@pytest.fixture
def fake_contract() -> FakeCIDsOwners:
    return FakeCIDsOwners()


@pytest.fixture
def signer():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def other_signer():
    return Account.from_key(OTHER_KEY)


@pytest.fixture
def hello_file(tmp_path: Path) -> Path:
    p = tmp_path / "hello.txt"
    p.write_text("Hello IPFS!!", encoding="utf-8")
    return p
