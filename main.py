# main.py
"""
Upload a file to IPFS and register its CID to the CIDsOwners smart contract.

    ipfs-cids-owners -a 0x... -e http://localhost:8545 -p <key> \\
        -i http://localhost:5001 hello.txt /hello.txt

Flags fall back to the variables of `.env` (see config.Settings).
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from config import Settings
from errors import Error, InvalidArguments
from eth_client import checksum_address, load_abi, load_signer
from models import Endpoint, LedgerEndpoint, UploadRegisterRequest, UploadRequest, validate_remote_path
from registrar import upload_and_register


def _arg_type(fn):
    """Turn an InvalidArguments raised by `fn` into an argparse error."""

    def parse(value: str):
        try:
            return fn(value)
        except InvalidArguments as ex:
            raise argparse.ArgumentTypeError(ex.msg) from None

    parse.__name__ = fn.__name__
    return parse


def _endpoint(value: str) -> Endpoint:
    return Endpoint.parse(value)


def _contract_address(value: str) -> str:
    return checksum_address(value, "ether_contract_address")


def _private_key(value: str) -> str:
    load_signer(value, "ether_owner_priv_key")
    return value


def _remote_path(value: str) -> str:
    return validate_remote_path(value)


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if n <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return n


def _positive_float(value: str) -> float:
    try:
        n = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if n <= 0:
        raise argparse.ArgumentTypeError("must be a positive number")
    return n


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="ipfs-cids-owners",
        description="Upload a file to IPFS and register its CID to the CIDsOwners Ethereum smart contract.",
    )
    ap.add_argument(
        "-c", "--ether-chain-id",
        type=_positive_int,
        default=settings.eth_chain_id,
        help="Ethereum chain id (default: ETH_CHAIN_ID or 1)",
    )
    ap.add_argument(
        "-a", "--ether-contract-address",
        type=_arg_type(_contract_address),
        default=settings.eth_contract_address or None,
        required=not settings.eth_contract_address,
        help="CIDsOwners contract address (default: ETH_CONTRACT_ADDRESS)",
    )
    ap.add_argument(
        "-e", "--ether-endpoint",
        type=_arg_type(_endpoint),
        default=settings.eth_rpc_url or None,
        required=not settings.eth_rpc_url,
        help="Ethereum endpoint. Format http(s)://<host>:<port> (default: ETH_RPC_URL)",
    )
    ap.add_argument(
        "-p", "--ether-owner-priv-key",
        type=_arg_type(_private_key),
        default=settings.eth_private_key or None,
        required=not settings.eth_private_key,
        help="Ethereum private key of the CID's owner, with or without 0x (default: ETH_PRIVATE_KEY)",
    )
    ap.add_argument(
        "-i", "--ipfs-endpoint",
        type=_arg_type(_endpoint),
        default=settings.ipfs_api_url,
        help="IPFS endpoint. Format http(s)://<host>:<port> (default: IPFS_API_URL or %(default)s)",
    )
    ap.add_argument(
        "--receipt-timeout",
        type=_positive_float,
        default=settings.eth_receipt_timeout,
        help="seconds to wait for the transaction receipt (default: ETH_RECEIPT_TIMEOUT or 120)",
    )
    ap.add_argument(
        "--ipfs-timeout",
        type=_positive_float,
        default=settings.ipfs_timeout,
        help="IPFS request timeout in seconds (default: IPFS_TIMEOUT or 60)",
    )
    ap.add_argument(
        "--abi",
        default=settings.eth_contract_abi_path,
        help="ABI JSON or compiled contract artifact (default: ETH_CONTRACT_ABI_PATH, built-in ABI if unset)",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    ap.add_argument("filepath", type=Path, help="file to upload")
    ap.add_argument(
        "remote_path",
        nargs="?",
        type=_arg_type(_remote_path),
        default=None,
        help="the path to set for the uploaded file; it MUST start with '/'",
    )
    return ap


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    try:
        settings = Settings.from_env()
    except Error as err:
        print(err, file=sys.stderr)
        return 1

    args = build_parser(settings).parse_args(argv)
    configure_logging("DEBUG" if args.verbose else settings.log_level)

    try:
        abi = load_abi(args.abi) if args.abi else None
        request = UploadRegisterRequest(
            upload=UploadRequest(filepath=args.filepath, remote_path=args.remote_path),
            ledger=LedgerEndpoint(
                contract_address=args.ether_contract_address,
                rpc_url=args.ether_endpoint,
                chain_id=args.ether_chain_id,
            ),
            signer_key=args.ether_owner_priv_key,
            storage_endpoint=args.ipfs_endpoint,
            receipt_timeout=args.receipt_timeout,
            storage_timeout=args.ipfs_timeout,
            contract_abi=abi,
        )
        summary = asyncio.run(upload_and_register(request))
    except Error as err:
        print(err, file=sys.stderr)
        return 1

    print(summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
