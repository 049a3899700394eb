"""
web3_provider.py — LedgerProvider backed by an async web3.py client.
"""

import re
from typing import Any, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from config import HTTP_TIMEOUT
from ledger.abis import ABIS
from ledger.base import ContractBinding, LedgerCallError, LedgerProvider, LedgerRevertError, LogEvent
from monitoring import get_logger

logger = get_logger("ledger.web3")

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def _to_checksum(value: Any) -> Any:
    if isinstance(value, str) and ADDRESS_PATTERN.match(value):
        return AsyncWeb3.to_checksum_address(value)
    return value


class Web3ContractBinding(ContractBinding):
    def __init__(self, provider: "Web3LedgerProvider", address: str, abi_name: str):
        super().__init__(address, abi_name)
        self.provider = provider
        self.contract = provider.web3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address), abi=ABIS[abi_name]
        )

    async def call(self, function: str, *args: Any) -> Any:
        fn = getattr(self.contract.functions, function)
        try:
            return await fn(*[_to_checksum(a) for a in args]).call()
        except (ContractLogicError, BadFunctionCallOutput) as e:
            raise LedgerRevertError(str(e), function, self.address) from e
        except Exception as e:
            raise LedgerCallError(f"{type(e).__name__}: {e}", function, self.address) from e

    async def events(self, event: str, **filters: Any) -> list[LogEvent]:
        contract_event = getattr(self.contract.events, event)
        argument_filters = {k: _to_checksum(v) for k, v in filters.items() if v is not None}
        try:
            logs = await contract_event.get_logs(argument_filters=argument_filters, from_block=0)
        except Exception as e:
            raise LedgerCallError(f"{type(e).__name__}: {e}", event, self.address) from e
        return [
            LogEvent(name=event, args=dict(log["args"]), block_number=int(log["blockNumber"]))
            for log in logs
        ]

    async def transact(self, function: str, *args: Any) -> str:
        if self.provider.read_only:
            raise LedgerCallError("read-only provider cannot send transactions", function, self.address)
        account = await self.provider.signer_address()
        fn = getattr(self.contract.functions, function)
        try:
            tx_hash = await fn(*[_to_checksum(a) for a in args]).transact({"from": account})
            receipt = await self.provider.web3.eth.wait_for_transaction_receipt(tx_hash)
        except ContractLogicError as e:
            raise LedgerRevertError(str(e), function, self.address) from e
        except Exception as e:
            raise LedgerCallError(f"{type(e).__name__}: {e}", function, self.address) from e
        if receipt["status"] != 1:
            raise LedgerRevertError(f"transaction {tx_hash.hex()} reverted", function, self.address)
        logger.info(f"{function} mined in block {receipt['blockNumber']}: {tx_hash.hex()}")
        return tx_hash.hex()


class Web3LedgerProvider(LedgerProvider):
    """
    One JSON-RPC connection. A read-only provider serves public browsing;
    a wallet provider signs with `account` (or the node's first account).
    """

    def __init__(self, rpc_url: str, account: Optional[str] = None, read_only: bool = True,
                 timeout: float = HTTP_TIMEOUT):
        self.rpc_url = rpc_url
        self.account = account
        self.read_only = read_only
        self.web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        logger.debug(f"Web3 provider initialized for {rpc_url} (read_only={read_only})")

    def contract(self, address: str, abi_name: str) -> ContractBinding:
        return Web3ContractBinding(self, address, abi_name)

    async def block_timestamp(self, block_number: int) -> Optional[int]:
        try:
            block = await self.web3.eth.get_block(block_number)
        except Exception as e:
            raise LedgerCallError(f"{type(e).__name__}: {e}", "getBlock") from e
        if not block:
            return None
        return int(block["timestamp"])

    async def signer_address(self) -> str:
        if self.account:
            return _to_checksum(self.account)
        accounts = await self.web3.eth.accounts
        if not accounts:
            raise LedgerCallError("no signing account available on the node", "eth_accounts")
        return accounts[0]

    async def close(self):
        disconnect = getattr(self.web3.provider, "disconnect", None)
        if callable(disconnect):
            await disconnect()
