# ipfs_client.py
from __future__ import annotations

import asyncio
import json
import logging
import secrets
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional, Union

import httpx

from errors import External, ExternalSystem, Internal, InvalidArguments
from models import Endpoint, validate_remote_path

logger = logging.getLogger(__name__)

ADD_PATH = "/api/v0/add"
DEFAULT_TIMEOUT = 60.0
CHUNK_SIZE = 64 * 1024


class _FileReadError(Exception):
    """An OSError from reading the file while its body was being sent."""

    def __init__(self, error: OSError) -> None:
        super().__init__(str(error))
        self.error = error


async def _multipart_body(f: BinaryIO, filename: str, boundary: str) -> AsyncIterator[bytes]:
    # 1 フィールドだけの multipart/form-data。読み込みはスレッド側で行う
    quoted = filename.replace("\\", "\\\\").replace('"', "%22")
    yield (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="{quoted}"\r\n'
        "Content-Type: application/octet-stream\r\n"
        "\r\n"
    ).encode("utf-8")
    while True:
        try:
            chunk = await asyncio.to_thread(f.read, CHUNK_SIZE)
        except OSError as ex:
            raise _FileReadError(ex) from ex
        if not chunk:
            break
        yield chunk
    yield f"\r\n--{boundary}--\r\n".encode("ascii")


def parse_add_response(body: str) -> str:
    """
    /api/v0/add は NDJSON（1行1 JSON）を返すことがある。
    最後の JSON オブジェクトの Hash を CID とする。
    """
    last_obj = None
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            last_obj = obj

    if last_obj is None:
        raise ValueError(f"ipfs add: malformed response: {body[:200]!r}")

    cid = str(last_obj.get("Hash") or "").strip()
    if not cid:
        raise ValueError(f"ipfs add: response without Hash: {last_obj!r}")
    return cid


class IpfsUploader:
    """
    IPFS (Kubo RPC) にファイルを追加して CID を返す。

    The underlying httpx.AsyncClient is the connection pool; close it with
    `aclose()` or use the uploader as an async context manager.
    """

    def __init__(
        self,
        endpoint: Union[Endpoint, str],
        *,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not isinstance(endpoint, Endpoint):
            endpoint = Endpoint.parse(endpoint)
        if timeout is not None and timeout <= 0:
            raise InvalidArguments("timeout", "must be a positive number of seconds")
        self._endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=str(endpoint),
            timeout=timeout,
            transport=transport,
        )

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    async def __aenter__(self) -> "IpfsUploader":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @staticmethod
    async def _open(path: Path) -> BinaryIO:
        try:
            return await asyncio.to_thread(path.open, "rb")
        except FileNotFoundError:
            raise InvalidArguments("filepath", "file not found") from None
        except PermissionError:
            raise InvalidArguments("filepath", "no read permission") from None
        except OSError as ex:
            raise Internal("system error when reading the file", ex) from ex

    async def upload_file(self, filepath: Union[str, Path], remote_path: Optional[str] = None) -> str:
        """
        ローカルファイルを IPFS に追加し、CID を返す。

        `remote_path` (must start with '/') additionally places the content
        at that path of the node's MFS. It does not change the CID.
        """
        validate_remote_path(remote_path)

        path = Path(filepath)
        params = {"pin": "true"}
        if remote_path is not None:
            params["to-files"] = remote_path

        f = await self._open(path)
        boundary = secrets.token_hex(16)
        try:
            logger.debug("ipfs add %s -> %s%s", path, self._endpoint, ADD_PATH)
            try:
                resp = await self._client.post(
                    ADD_PATH,
                    params=params,
                    content=_multipart_body(f, path.name, boundary),
                    headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
                )
                resp.raise_for_status()
                cid = parse_add_response(resp.text)
            except _FileReadError as ex:
                raise Internal("system error when reading the file", ex.error) from ex.error
            except (httpx.HTTPError, OSError, ValueError) as ex:
                raise External(ExternalSystem.IPFS, ex) from ex
        finally:
            f.close()

        logger.info("uploaded %s to IPFS, CID %s", path, cid)
        return cid
