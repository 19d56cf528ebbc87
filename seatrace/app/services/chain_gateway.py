"""
Chain gateway client.

Submits contract function calls to a WeBASE-Front compatible node over HTTP.
Each call is one logical chain transaction attributed to the caller's
blockchain address. The client reports what the gateway said; deciding
whether a status message counts as success is left to the caller.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from seatrace.app.core.config import settings
from seatrace.app.core.exceptions import ChainGatewayError
from seatrace.app.core.reliability import CircuitBreaker, CircuitOpenError
from seatrace.app.schemas.chain import ChainCallResult, ChainTrace

logger = logging.getLogger("seatrace.chain")

TRANSACTION_ENDPOINT = "/WeBASE-Front/trans/handle"
QUERY_ENDPOINT = "/WeBASE-Front/trans/call"


def _format_chain_time(value: Any) -> Optional[str]:
    """Convert a unix timestamp (seconds, possibly as string) to 'YYYY-MM-DD HH:MM:SS' UTC."""
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    if seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


class ChainGatewayClient:
    """
    HTTP client for the chain gateway.

    Usage:
        gateway = ChainGatewayClient()
        result = await gateway.ship_good("G120240101ab12cd34", "Truck A", company.blockchain_address)
        if result.status_message != "Success":
            ...

    Raises ChainGatewayError when the gateway is unreachable, times out,
    answers with a non-zero code or returns no transaction hash.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        contract_address: Optional[str] = None,
        contract_abi: Optional[str] = None,
        contract_name: Optional[str] = None,
        group_id: Optional[int] = None,
        app_key: Optional[str] = None,
        app_secret: Optional[str] = None,
        public_user: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = (base_url or settings.chain_gateway_url).rstrip("/")
        self.contract_address = contract_address if contract_address is not None else settings.chain_contract_address
        self.contract_abi_source = contract_abi if contract_abi is not None else settings.chain_contract_abi
        self.contract_name = contract_name or settings.chain_contract_name
        self.group_id = group_id or settings.chain_group_id
        self.public_user = public_user or settings.chain_public_user
        self.timeout = timeout if timeout is not None else settings.chain_timeout_seconds
        self.breaker = breaker or CircuitBreaker(
            name="chain_gateway",
            failure_threshold=settings.chain_breaker_failure_threshold,
            reset_timeout=settings.chain_breaker_reset_timeout,
        )

        headers = {"Content-Type": "application/json"}
        app_key = app_key if app_key is not None else settings.chain_app_key
        app_secret = app_secret if app_secret is not None else settings.chain_app_secret
        if app_key and app_secret:
            headers["App-Key"] = app_key
            headers["App-Secret"] = app_secret

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )
        self._abi_cache: Optional[List[Any]] = None

    async def aclose(self):
        await self._client.aclose()

    def _contract_abi(self) -> List[Any]:
        """Load the contract ABI from a file path or an inline JSON string."""
        if self._abi_cache is not None:
            return self._abi_cache

        source = (self.contract_abi_source or "").strip()
        if not source:
            raise ChainGatewayError("Contract ABI is not configured")

        if source[0] in "./":
            try:
                with open(source, "r", encoding="utf-8") as fh:
                    source = fh.read()
            except OSError as e:
                raise ChainGatewayError(f"Failed to read contract ABI file: {e}")

        try:
            abi = json.loads(source)
        except ValueError as e:
            raise ChainGatewayError(f"Contract ABI is not valid JSON: {e}")

        self._abi_cache = abi
        return abi

    def _request_body(self, function_name: str, params: List[Any], user: str) -> Dict[str, Any]:
        return {
            "groupId": self.group_id,
            "contractAbi": self._contract_abi(),
            "contractAddress": self.contract_address,
            "contractName": self.contract_name,
            "funcName": function_name,
            "funcParam": params,
            "user": user,
            "useCns": False,
        }

    async def _post(self, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        function_name = body.get("funcName")

        async def send():
            response = await asyncio.wait_for(
                self._client.post(endpoint, json=body),
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()

        try:
            payload = await self.breaker.call(send)
        except CircuitOpenError as e:
            raise ChainGatewayError(f"Chain gateway unavailable: {e}", function_name)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("Chain call timed out [function=%s, timeout=%ss]", function_name, self.timeout)
            raise ChainGatewayError(f"Chain gateway timed out after {self.timeout}s", function_name)
        except httpx.HTTPStatusError as e:
            logger.warning("Chain gateway returned HTTP %s [function=%s]", e.response.status_code, function_name)
            raise ChainGatewayError(f"Chain gateway returned HTTP {e.response.status_code}", function_name)
        except httpx.HTTPError as e:
            logger.warning("Chain gateway unreachable [function=%s, error=%s]", function_name, e)
            raise ChainGatewayError(f"Chain gateway unreachable: {e}", function_name)
        except ValueError:
            raise ChainGatewayError("Chain gateway returned a non-JSON response", function_name)

        if not isinstance(payload, dict):
            raise ChainGatewayError("Chain gateway returned an unexpected response", function_name)
        return payload

    async def call(self, function_name: str, params: List[Any], caller_address: str) -> ChainCallResult:
        """
        Submit one contract transaction.

        Returns the transaction hash and the gateway's status message. A
        message other than "Success" is passed through unchanged.
        """
        body = self._request_body(function_name, params, caller_address)
        payload = await self._post(TRANSACTION_ENDPOINT, body)

        code = payload.get("code", 0)
        message = payload.get("message") or ""
        if code not in (0, None):
            logger.error("Chain transaction rejected [function=%s, code=%s, message=%s]", function_name, code, message)
            raise ChainGatewayError(f"Chain transaction rejected: {message}", function_name, message)

        tx_hash = payload.get("transactionHash") or ""
        if not tx_hash:
            raise ChainGatewayError("Chain gateway returned no transaction hash", function_name, message)

        logger.info("Chain transaction submitted [function=%s, caller=%s, txHash=%s]", function_name, caller_address, tx_hash)
        return ChainCallResult(transaction_hash=tx_hash, status_message=message)

    async def query(self, function_name: str, params: List[Any]) -> Any:
        """Run a read-only contract call and return its ``data.result`` value."""
        body = self._request_body(function_name, params, self.public_user)
        payload = await self._post(QUERY_ENDPOINT, body)

        code = payload.get("code", 0)
        if code not in (0, None):
            message = payload.get("message") or ""
            raise ChainGatewayError(f"Chain query failed: {message}", function_name, message)

        data = payload.get("data") or {}
        if not isinstance(data, dict) or "result" not in data:
            raise ChainGatewayError("Chain query returned no result", function_name)
        return data["result"]

    # Contract functions

    async def register_good(self, good_id: str, good_name: str, caller_address: str) -> ChainCallResult:
        return await self.call("registerGood", [good_id, good_name], caller_address)

    async def ship_good(self, good_id: str, transport_info: str, caller_address: str) -> ChainCallResult:
        return await self.call("shipGood", [good_id, transport_info], caller_address)

    async def inspect_good(self, good_id: str, inspection_info: str, caller_address: str) -> ChainCallResult:
        return await self.call("inspectGood", [good_id, inspection_info], caller_address)

    async def deliver_good(self, good_id: str, delivery_info: str, caller_address: str) -> ChainCallResult:
        return await self.call("deliverGood", [good_id, delivery_info], caller_address)

    async def get_full_trace(self, good_id: str) -> ChainTrace:
        result = await self.query("getFullTrace", [good_id])
        if not isinstance(result, dict):
            raise ChainGatewayError("Unable to parse chain trace", "getFullTrace")

        def text(key: str) -> str:
            value = result.get(key)
            return "" if value is None else str(value)

        trace = ChainTrace(
            good_id=text("goodId") or good_id,
            good_name=text("goodName"),
            owner_company_id=text("ownerCompanyId"),
            register_time=_format_chain_time(result.get("registerTime")),
            ship_exists=bool(result.get("shipExists")),
            ship_company_id=text("shipCompanyId"),
            ship_operator_addr=text("shipOperatorAddr"),
            transport_info=text("transportInfo"),
            ship_time=_format_chain_time(result.get("shipTime")),
            inspect_exists=bool(result.get("inspectExists")),
            port_company_id=text("portCompanyId"),
            inspect_operator_addr=text("inspectOperatorAddr"),
            inspection_info=text("inspectionInfo"),
            inspect_time=_format_chain_time(result.get("inspectTime")),
            delivery_exists=bool(result.get("deliveryExists")),
            dealer_company_id=text("dealerCompanyId"),
            delivery_operator_addr=text("deliveryOperatorAddr"),
            delivery_info=text("deliveryInfo"),
            delivery_time=_format_chain_time(result.get("deliveryTime")),
        )
        logger.info("Chain trace fetched [goodID=%s, stages=%d]", good_id, trace.completed_stages)
        return trace

    async def get_good_status(self, good_id: str) -> int:
        result = await self.query("getGoodStatus", [good_id])
        try:
            return int(result)
        except (TypeError, ValueError):
            raise ChainGatewayError(f"Unable to parse chain status '{result}'", "getGoodStatus")


_gateway: Optional[ChainGatewayClient] = None


def get_chain_gateway() -> ChainGatewayClient:
    """
    FastAPI dependency returning the process-wide chain gateway client.
    """
    global _gateway
    if _gateway is None:
        _gateway = ChainGatewayClient()
    return _gateway


async def close_chain_gateway():
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None
