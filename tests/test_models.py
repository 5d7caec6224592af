from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest
from hexbytes import HexBytes

from errors import InvalidArguments
from models import (
    Endpoint,
    TransactionReceipt,
    UploadRegisterSummary,
    UploadRequest,
    validate_remote_path,
)


def test_endpoint_parse() -> None:
    ep = Endpoint.parse("http://localhost:8545")
    assert (ep.scheme, ep.host, ep.port) == ("http", "localhost", 8545)
    assert str(ep) == "http://localhost:8545"

    ep = Endpoint.parse("HTTPS://node.example.org:443")
    assert (ep.scheme, ep.host, ep.port) == ("https", "node.example.org", 443)


@pytest.mark.parametrize(
    "value, reason",
    [
        ("localhost:8545", "no scheme"),
        ("http://localhost", "no port"),
        ("ftp://localhost:21", "only HTTP and HTTPS"),
        ("http://:8545", "no host"),
        ("http://localhost:99999", "invalid URI"),
        ("", "no scheme"),
    ],
)
def test_endpoint_parse_rejects(value: str, reason: str) -> None:
    with pytest.raises(InvalidArguments) as ei:
        Endpoint.parse(value, name="ipfs_endpoint")
    assert ei.value.names == "ipfs_endpoint"
    assert reason in ei.value.msg


def test_endpoint_ipv6_display() -> None:
    ep = Endpoint.parse("http://[::1]:5001")
    assert ep.host == "::1"
    assert str(ep) == "http://[::1]:5001"


def test_remote_path() -> None:
    assert validate_remote_path(None) is None
    assert validate_remote_path("/hello-ipfs.txt") == "/hello-ipfs.txt"
    with pytest.raises(InvalidArguments) as ei:
        validate_remote_path("hello-ipfs.txt")
    assert ei.value.names == "remote_path"


def test_upload_request() -> None:
    req = UploadRequest(filepath="hello.txt")
    assert req.filepath == Path("hello.txt")
    assert req.remote_path is None

    with pytest.raises(InvalidArguments):
        UploadRequest(filepath="hello.txt", remote_path="no-slash")


def test_receipt_from_web3() -> None:
    receipt = TransactionReceipt.from_web3(
        {
            "transactionHash": HexBytes(b"\xaa" * 32),
            "blockNumber": 7,
            "blockHash": HexBytes(b"\xbb" * 32),
            "status": 1,
            "gasUsed": 45000,
        }
    )
    assert receipt.transaction_hash == "0x" + "aa" * 32
    assert receipt.block_hash == "0x" + "bb" * 32
    assert receipt.block_number == 7
    assert receipt.status == 1
    assert receipt.raw["gasUsed"] == 45000


def test_receipt_without_hash_is_a_bug() -> None:
    with pytest.raises(RuntimeError):
        TransactionReceipt.from_web3({"blockNumber": 1})


def test_summary() -> None:
    s = UploadRegisterSummary(cid="QmX", transaction_hash="0x01")
    assert str(s) == "CID: 'QmX', Ethereum transaction hash: '0x01'"
    with pytest.raises(dataclasses.FrozenInstanceError):
        s.cid = "other"
