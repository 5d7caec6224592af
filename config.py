# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from errors import InvalidArguments
from eth_client import DEFAULT_RECEIPT_TIMEOUT
from ipfs_client import DEFAULT_TIMEOUT as DEFAULT_IPFS_TIMEOUT
from models import DEFAULT_CHAIN_ID

DEFAULT_IPFS_API_URL = "http://127.0.0.1:5001"


def _env_str(name: str) -> str:
    return os.getenv(name, "").strip()


def _env_number(name: str, cast, default):
    raw = _env_str(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise InvalidArguments(name, f"expected a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """
    .env / 環境変数から読む設定。CLI フラグの既定値として使う。

      - ETH_RPC_URL
      - ETH_PRIVATE_KEY
      - ETH_CONTRACT_ADDRESS
      - ETH_CHAIN_ID            (default 1)
      - ETH_CONTRACT_ABI_PATH   (optional)
      - ETH_RECEIPT_TIMEOUT     (seconds, default 120)
      - IPFS_API_URL            (default http://127.0.0.1:5001)
      - IPFS_TIMEOUT            (seconds, default 60)
      - LOG_LEVEL               (default WARNING)
    """

    eth_rpc_url: str = ""
    eth_private_key: str = field(default="", repr=False)
    eth_contract_address: str = ""
    eth_chain_id: int = DEFAULT_CHAIN_ID
    eth_contract_abi_path: Optional[str] = None
    eth_receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT
    ipfs_api_url: str = DEFAULT_IPFS_API_URL
    ipfs_timeout: float = DEFAULT_IPFS_TIMEOUT
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()

        return cls(
            eth_rpc_url=_env_str("ETH_RPC_URL"),
            eth_private_key=_env_str("ETH_PRIVATE_KEY"),
            eth_contract_address=_env_str("ETH_CONTRACT_ADDRESS"),
            eth_chain_id=_env_number("ETH_CHAIN_ID", int, DEFAULT_CHAIN_ID),
            eth_contract_abi_path=_env_str("ETH_CONTRACT_ABI_PATH") or None,
            eth_receipt_timeout=_env_number("ETH_RECEIPT_TIMEOUT", float, DEFAULT_RECEIPT_TIMEOUT),
            ipfs_api_url=_env_str("IPFS_API_URL") or DEFAULT_IPFS_API_URL,
            ipfs_timeout=_env_number("IPFS_TIMEOUT", float, DEFAULT_IPFS_TIMEOUT),
            log_level=(_env_str("LOG_LEVEL") or "WARNING").upper(),
        )
