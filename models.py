# models.py
from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

from errors import InvalidArguments

DEFAULT_CHAIN_ID = 1
_SCHEMES = ("http", "https")


@dataclass(frozen=True)
class Endpoint:
    """scheme://host:port だけで構成されるエンドポイント。"""

    scheme: str
    host: str
    port: int

    @classmethod
    def parse(cls, value: str, name: str = "endpoint") -> "Endpoint":
        raw = (value or "").strip()
        if "://" not in raw:
            raise InvalidArguments(name, "invalid endpoint, no scheme provided")

        try:
            u = urllib.parse.urlsplit(raw)
            port = u.port
        except ValueError as ex:
            raise InvalidArguments(name, f"invalid URI. {ex}") from None

        scheme = u.scheme.lower()
        if scheme not in _SCHEMES:
            raise InvalidArguments(name, "invalid endpoint, only HTTP and HTTPS schemes are accepted")
        if not u.hostname:
            raise InvalidArguments(name, "invalid endpoint, no host provided")
        if port is None:
            raise InvalidArguments(
                name,
                "invalid endpoint, no port provided or isn't a valid unsigned 16 bits number",
            )

        return cls(scheme=scheme, host=u.hostname, port=port)

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}"


def validate_remote_path(remote_path: Optional[str], name: str = "remote_path") -> Optional[str]:
    if remote_path is None:
        return None
    if not remote_path.startswith("/"):
        raise InvalidArguments(name, "invalid remote path, it MUST start with '/'")
    return remote_path


@dataclass(frozen=True)
class UploadRequest:
    filepath: Path
    remote_path: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "filepath", Path(self.filepath))
        validate_remote_path(self.remote_path)


@dataclass(frozen=True)
class LedgerEndpoint:
    contract_address: str
    rpc_url: Endpoint
    chain_id: int = DEFAULT_CHAIN_ID


@dataclass(frozen=True)
class UploadRegisterRequest:
    upload: UploadRequest
    ledger: LedgerEndpoint
    signer_key: str = field(repr=False)
    storage_endpoint: Endpoint
    receipt_timeout: Optional[float] = None
    storage_timeout: Optional[float] = None
    contract_abi: Optional[Sequence[Mapping[str, Any]]] = field(default=None, repr=False)


def _hex(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    s = str(value)
    return s if s.startswith("0x") else "0x" + s


@dataclass(frozen=True)
class TransactionReceipt:
    transaction_hash: str
    block_number: Optional[int] = None
    block_hash: Optional[str] = None
    status: Optional[int] = None
    gas_used: Optional[int] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_web3(cls, receipt: Mapping[str, Any]) -> "TransactionReceipt":
        tx_hash = _hex(receipt.get("transactionHash"))
        if not tx_hash or tx_hash == "0x":
            raise RuntimeError("BUG a transaction receipt always carries its transaction hash")
        return cls(
            transaction_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            block_hash=_hex(receipt.get("blockHash")),
            status=receipt.get("status"),
            gas_used=receipt.get("gasUsed"),
            raw=MappingProxyType(dict(receipt)),
        )


@dataclass(frozen=True)
class UploadRegisterSummary:
    cid: str
    transaction_hash: str

    def __str__(self) -> str:
        return f"CID: '{self.cid}', Ethereum transaction hash: '{self.transaction_hash}'"
