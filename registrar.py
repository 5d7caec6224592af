# registrar.py
from __future__ import annotations

import logging

from eth_account.signers.local import LocalAccount

from errors import Error
from eth_client import CIDS_OWNERS_ABI, DEFAULT_RECEIPT_TIMEOUT, EthereumClient, load_signer
from ipfs_client import DEFAULT_TIMEOUT, IpfsUploader
from models import TransactionReceipt, UploadRegisterRequest, UploadRegisterSummary, UploadRequest

logger = logging.getLogger(__name__)


class FileRegistrar:
    """
    1. IPFS にファイルをアップロード
    2. その CID を CIDsOwners コントラクトに登録

    という "ユースケース" を表現するクラス。

    The two steps are not transactional: when registration fails after a
    successful upload the content stays pinned in IPFS without an on-chain
    record. Use `register_cid` to retry the registration of that CID.
    """

    def __init__(self, uploader: IpfsUploader, eth_client: EthereumClient):
        self._uploader = uploader
        self._eth_client = eth_client

    async def register(self, request: UploadRequest, signer: LocalAccount) -> UploadRegisterSummary:
        # 1. IPFS にアップロード
        cid = await self._uploader.upload_file(request.filepath, request.remote_path)

        # 2. Ethereum に登録
        try:
            receipt = await self._eth_client.register(cid, signer)
        except Error:
            logger.warning("CID %s was uploaded but its registration failed; it stays pinned", cid)
            raise

        return UploadRegisterSummary(cid=cid, transaction_hash=receipt.transaction_hash)

    async def register_cid(self, cid: str, signer: LocalAccount) -> TransactionReceipt:
        return await self._eth_client.register(cid, signer)


async def upload_and_register(request: UploadRegisterRequest) -> UploadRegisterSummary:
    """
    Upload `request.upload` to IPFS and register its CID to the owner of
    `request.signer_key`.
    """
    signer = load_signer(request.signer_key)
    receipt_timeout = DEFAULT_RECEIPT_TIMEOUT if request.receipt_timeout is None else request.receipt_timeout
    storage_timeout = DEFAULT_TIMEOUT if request.storage_timeout is None else request.storage_timeout

    eth_client = EthereumClient(
        request.ledger.contract_address,
        request.ledger.rpc_url,
        request.ledger.chain_id,
        abi=CIDS_OWNERS_ABI if request.contract_abi is None else request.contract_abi,
        receipt_timeout=receipt_timeout,
    )
    try:
        async with IpfsUploader(request.storage_endpoint, timeout=storage_timeout) as uploader:
            registrar = FileRegistrar(uploader, eth_client)
            return await registrar.register(request.upload, signer)
    finally:
        await eth_client.aclose()
