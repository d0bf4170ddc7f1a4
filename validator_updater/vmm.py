"""Typed client for the dstack VMM RPC surface.

Every method is a JSON POST to <base_url>/prpc/<Method>?json. Failures are
surfaced once as RpcError; retry and timeout policy belongs to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
import pydantic
from pydantic import BaseModel

from .errors import ProtocolError, RpcError
from .models import (
    AppIdRequest,
    ComposeHashResponse,
    CreateVmRequest,
    CreateVmResponse,
    PublicKeyResponse,
    StatusResponse,
    VmIdRequest,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class VmmClient:
    """Client for the dstack VMM.

    Example:
        async with VmmClient("http://localhost:10300") as vmm:
            status = await vmm.status()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Create a VMM client.

        Args:
            base_url: VMM base URL
            timeout: Request timeout in seconds
            http_client: Preconfigured client (tests inject a mock transport)
        """
        self.base_url = base_url.rstrip("/")
        # The VMM listens on a host-local endpoint, often with a self-signed cert.
        self._client = http_client or httpx.AsyncClient(timeout=timeout, verify=False)

    async def rpc_call(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """POST a raw RPC call and return the decoded JSON object.

        Raises:
            RpcError: On transport failure or non-2xx status
            ProtocolError: If the body is not a JSON object
        """
        url = f"{self.base_url}/prpc/{method}?json"
        logger.info(f"Making RPC call to: {url}")

        try:
            response = await self._client.post(url, json=params)
        except httpx.HTTPError as e:
            raise RpcError(method, None, str(e) or type(e).__name__) from e

        if not response.is_success:
            logger.error(f"RPC call failed with status {response.status_code}: {response.text}")
            raise RpcError(method, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(f"Failed to parse RPC response for {method}: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError(f"RPC {method} returned non-object JSON")
        return data

    async def _call(
        self, method: str, request: BaseModel | None, model: type[ResponseT]
    ) -> ResponseT:
        params = request.model_dump() if request is not None else {}
        data = await self.rpc_call(method, params)
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as e:
            raise ProtocolError(f"Invalid {method} response: {e}") from e

    async def status(self) -> StatusResponse:
        return await self._call("Status", None, StatusResponse)

    async def stop_vm(self, vm_id: str) -> None:
        await self.rpc_call("StopVm", VmIdRequest(id=vm_id).model_dump())

    async def remove_vm(self, vm_id: str) -> None:
        await self.rpc_call("RemoveVm", VmIdRequest(id=vm_id).model_dump())

    async def get_app_env_encrypt_pubkey(self, app_id: str) -> str:
        response = await self._call(
            "GetAppEnvEncryptPubKey", AppIdRequest(app_id=app_id), PublicKeyResponse
        )
        return response.public_key

    async def get_compose_hash(self, request: CreateVmRequest) -> str:
        response = await self._call("GetComposeHash", request, ComposeHashResponse)
        return response.hash

    async def create_vm(self, request: CreateVmRequest) -> str:
        response = await self._call("CreateVm", request, CreateVmResponse)
        return response.id

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
