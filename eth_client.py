# eth_client.py
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from errors import External, ExternalSystem, InvalidArguments
from models import DEFAULT_CHAIN_ID, Endpoint, TransactionReceipt

logger = logging.getLogger(__name__)


# CIDsOwners: register(string) 0xf2c298be / getOwnedCIDs(address) 0x5ba52c96
CIDS_OWNERS_ABI = [
    {
        "inputs": [
            {"internalType": "string", "name": "cid", "type": "string"},
        ],
        "name": "register",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "owner", "type": "address"},
        ],
        "name": "getOwnedCIDs",
        "outputs": [
            {"internalType": "string[]", "name": "cids", "type": "string[]"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

DEFAULT_RECEIPT_TIMEOUT = 120.0


class TransactionReverted(Exception):
    pass


def load_abi(path: Union[str, Path]) -> list:
    """
    ABI の JSON を読む。Truffle / Hardhat の artifact（{"abi": [...]}）でも可。
    """
    try:
        obj = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise InvalidArguments("abi_path", "file not found") from None
    except json.JSONDecodeError as ex:
        raise InvalidArguments("abi_path", f"not a JSON document. {ex}") from None

    abi = obj["abi"] if isinstance(obj, dict) and "abi" in obj else obj
    if not isinstance(abi, list):
        raise InvalidArguments("abi_path", "expected a JSON ABI list or an artifact with an 'abi' key")

    names = {x.get("name") for x in abi if isinstance(x, dict) and x.get("type") == "function"}
    missing = {"register", "getOwnedCIDs"} - names
    if missing:
        raise InvalidArguments("abi_path", f"ABI lacks functions: {', '.join(sorted(missing))}")
    return abi


def checksum_address(address: str, name: str = "address") -> str:
    if not isinstance(address, str) or not Web3.is_address(address):
        raise InvalidArguments(name, "invalid format for Ethereum address")
    return Web3.to_checksum_address(address)


def load_signer(private_key: str, name: str = "signer_key") -> LocalAccount:
    """Private key, with or without the 0x prefix."""
    key = (private_key or "").strip()
    if not key:
        raise InvalidArguments(name, "private key is empty")
    try:
        return Account.from_key(key)
    except Exception:
        # 鍵の値はメッセージに含めない
        raise InvalidArguments(name, "invalid format for Ethereum private key") from None


class CIDsOwnersContract:
    """
    Typed binding of the two CIDsOwners entry points on top of AsyncWeb3.

    Raises whatever web3 raises; EthereumClient classifies the failures.
    """

    def __init__(self, w3: AsyncWeb3, address: str, abi: Sequence[Mapping[str, Any]]) -> None:
        self._w3 = w3
        self._contract = w3.eth.contract(address=address, abi=list(abi))

    @property
    def address(self) -> str:
        return self._contract.address

    def encode_register(self, cid: str) -> str:
        """
        Calldata of `register(cid)`, without sending anything. Diagnostic
        helper for checking a transaction offline; the send path builds its
        own calldata through `build_transaction`.
        """
        return self._contract.encode_abi("register", args=[cid])

    def encode_get_owned_cids(self, owner: str) -> str:
        """Calldata of `getOwnedCIDs(owner)`. Diagnostic helper, like `encode_register`."""
        return self._contract.encode_abi("getOwnedCIDs", args=[owner])

    async def send_register(self, cid: str, account: LocalAccount, chain_id: int) -> bytes:
        nonce = await self._w3.eth.get_transaction_count(account.address, "pending")
        tx = await self._contract.functions.register(cid).build_transaction(
            {
                "from": account.address,
                "nonce": nonce,
                "chainId": chain_id,
            }
        )
        signed = account.sign_transaction(tx)
        return await self._w3.eth.send_raw_transaction(signed.raw_transaction)

    async def wait_for_receipt(self, tx_hash: bytes, timeout: float) -> Optional[Mapping[str, Any]]:
        return await self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)

    async def get_owned_cids(self, owner: str) -> list[str]:
        return list(await self._contract.functions.getOwnedCIDs(owner).call())


class EthereumClient:
    """
    CIDsOwners コントラクトへ CID の所有者を登録・照会するクライアント。

    Holds only the contract address, the chain id and the RPC connection
    pool; signers are passed per call and never kept. Reachability of the
    endpoint is not checked here, it shows up on the first call.
    """

    def __init__(
        self,
        contract_address: str,
        endpoint: Union[Endpoint, str],
        chain_id: Optional[int] = None,
        *,
        abi: Sequence[Mapping[str, Any]] = CIDS_OWNERS_ABI,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        contract: Optional[CIDsOwnersContract] = None,
    ) -> None:
        if not isinstance(endpoint, Endpoint):
            try:
                endpoint = Endpoint.parse(endpoint)
            except InvalidArguments as ex:
                raise InvalidArguments("endpoint", f"malformed HTTP address. {ex.msg}") from None

        self._chain_id = DEFAULT_CHAIN_ID if chain_id is None else chain_id
        if not isinstance(self._chain_id, int) or self._chain_id <= 0:
            raise InvalidArguments("chain_id", "must be a positive integer")
        if receipt_timeout is None or receipt_timeout <= 0:
            raise InvalidArguments("receipt_timeout", "must be a positive number of seconds")

        address = checksum_address(contract_address, "contract_address")
        self._endpoint = endpoint
        self._receipt_timeout = float(receipt_timeout)
        self._w3: Optional[AsyncWeb3] = None

        if contract is None:
            # web3 側のリトライは無効化する（失敗はそのまま External として返す）
            self._w3 = AsyncWeb3(AsyncHTTPProvider(str(endpoint), exception_retry_configuration=None))
            contract = CIDsOwnersContract(self._w3, address, abi)
        self._contract = contract

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def contract(self) -> CIDsOwnersContract:
        return self._contract

    async def __aenter__(self) -> "EthereumClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._w3 is not None:
            await self._w3.provider.disconnect()

    async def register(self, cid: str, signer: LocalAccount) -> TransactionReceipt:
        """
        Solidity: register(string cid)

        Signs with `signer` bound to this client's chain id, submits, and
        waits up to `receipt_timeout` seconds for the receipt.
        """
        if not cid:
            raise InvalidArguments("cid", "must not be empty")

        try:
            tx_hash = await self._contract.send_register(cid, signer, self._chain_id)
            logger.debug("register(%r) submitted from %s, tx %s", cid, signer.address, Web3.to_hex(tx_hash))
            receipt = await self._contract.wait_for_receipt(tx_hash, self._receipt_timeout)
            if receipt is not None and receipt.get("status") == 0:
                raise TransactionReverted(f"register transaction {Web3.to_hex(tx_hash)} reverted")
        except Exception as ex:
            raise External(ExternalSystem.ETHEREUM, ex) from ex

        if receipt is None:
            raise RuntimeError(
                "BUG always expecting a transaction receipt from the register method of the CIDsOwners contract"
            )

        out = TransactionReceipt.from_web3(receipt)
        logger.info("registered CID %s for %s, tx %s", cid, signer.address, out.transaction_hash)
        return out

    async def list_owned(self, owner_address: str) -> list[str]:
        """
        Solidity: getOwnedCIDs(address owner) view

        Ledger order, duplicates kept.
        """
        owner = checksum_address(owner_address, "owner_address")
        try:
            cids = await self._contract.get_owned_cids(owner)
        except Exception as ex:
            raise External(ExternalSystem.ETHEREUM, ex) from ex
        return [str(c) for c in cids]
