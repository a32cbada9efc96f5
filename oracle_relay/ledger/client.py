"""
Ledger client - the one façade the relay and the API use to reach the
FlightSurety contracts over JSON-RPC.

Two interaction styles:
- call: read-only, returns the decoded result
- send: state-mutating, transacts from an unlocked node account and waits
  for the receipt

Every send may be declined by contract validation. That surfaces as
RejectedByLedger, never as a crash. Connectivity problems surface as
TransportError so the subscription layer can resubscribe.

Contract artifacts are the truffle build JSON files (the ``abi`` key is
used); addresses come from configuration.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from oracle_relay.config import config
from oracle_relay.errors import RejectedByLedger, TransportError
from oracle_relay.ledger.events import APP_CONTRACT, DATA_CONTRACT

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SendContext:
    """
    Sender identity, attached value (wei) and gas ceiling for a send.
    """
    sender: str
    value: int = 0
    gas: Optional[int] = None

    def to_tx(self, default_gas: int) -> dict:
        tx = {'from': self.sender, 'gas': self.gas or default_gas}
        if self.value:
            tx['value'] = self.value
        return tx


def load_abi(path: str) -> List[dict]:
    """Load the ABI from a truffle artifact (or a bare ABI list)."""
    with Path(path).open() as f:
        artifact = json.load(f)
    if isinstance(artifact, list):
        return artifact
    return artifact['abi']


def _reason(exc: Exception) -> str:
    message = getattr(exc, 'message', None)
    if message:
        return str(message)
    if exc.args and isinstance(exc.args[0], Mapping):
        return str(exc.args[0].get('message', exc.args[0]))
    return str(exc)


class LedgerClient:
    """
    Client for the FlightSurety app and data contracts.

    Handles:
    - read-only calls with an optional sender
    - transactions with sender, value and gas ceiling
    - event log queries by block range
    - mapping web3/transport failures onto the relay error taxonomy
    """

    def __init__(
        self,
        web3: Web3,
        contracts: Dict[str, Any],
        default_gas: Optional[int] = None,
        receipt_timeout: Optional[int] = None,
    ):
        self.web3 = web3
        self.contracts = contracts
        self.default_gas = default_gas or config.ledger.gas_limit
        self.receipt_timeout = receipt_timeout or config.ledger.receipt_timeout_seconds

    @classmethod
    def from_config(cls) -> 'LedgerClient':
        """Create client from application configuration."""
        ledger = config.ledger
        if not ledger.is_configured:
            raise TransportError('APP_CONTRACT_ADDRESS and DATA_CONTRACT_ADDRESS must be set')

        web3 = Web3(Web3.HTTPProvider(
            ledger.url,
            request_kwargs={'timeout': ledger.timeout_seconds},
        ))
        contracts = {
            APP_CONTRACT: web3.eth.contract(
                address=Web3.to_checksum_address(ledger.app_address),
                abi=load_abi(ledger.app_abi_path),
            ),
            DATA_CONTRACT: web3.eth.contract(
                address=Web3.to_checksum_address(ledger.data_address),
                abi=load_abi(ledger.data_abi_path),
            ),
        }
        logger.info(f'Ledger client initialized for {ledger.url}')
        return cls(web3, contracts, default_gas=ledger.gas_limit)

    def _contract(self, name: str):
        try:
            return self.contracts[name]
        except KeyError:
            raise ValueError(f'Unknown contract: {name}') from None

    def address_of(self, contract: str = APP_CONTRACT) -> str:
        return self._contract(contract).address

    def is_connected(self) -> bool:
        try:
            return bool(self.web3.is_connected())
        except requests.exceptions.RequestException:
            return False

    def accounts(self) -> List[str]:
        """Unlocked node accounts."""
        try:
            return list(self.web3.eth.accounts)
        except requests.exceptions.RequestException as e:
            raise TransportError(f'Could not list accounts: {e}') from e

    def block_number(self) -> int:
        try:
            return int(self.web3.eth.block_number)
        except requests.exceptions.RequestException as e:
            raise TransportError(f'Could not read block number: {e}') from e

    def call(
        self,
        method: str,
        *args: Any,
        sender: Optional[str] = None,
        contract: str = APP_CONTRACT,
    ) -> Any:
        """
        Invoke a read-only contract function.

        Raises:
            RejectedByLedger if the call reverts
            TransportError on network errors
        """
        fn = getattr(self._contract(contract).functions, method)(*args)
        tx = {'from': sender} if sender else {}

        try:
            return fn.call(tx)
        except (ContractLogicError, Web3RPCError) as e:
            raise RejectedByLedger(method, _reason(e)) from e
        except requests.exceptions.RequestException as e:
            logger.error(f'Ledger call {method} failed: {e}')
            raise TransportError(f'{method}: {e}') from e

    def send(
        self,
        method: str,
        *args: Any,
        context: SendContext,
        contract: str = APP_CONTRACT,
    ) -> Mapping[str, Any]:
        """
        Transact a state-mutating contract function and wait for its receipt.

        Returns:
            The transaction receipt

        Raises:
            RejectedByLedger if contract validation declines the transaction
            TransportError on network errors
        """
        fn = getattr(self._contract(contract).functions, method)(*args)

        try:
            tx_hash = fn.transact(context.to_tx(self.default_gas))
            receipt = self.web3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=self.receipt_timeout,
            )
        except (ContractLogicError, Web3RPCError) as e:
            raise RejectedByLedger(method, _reason(e)) from e
        except TimeExhausted as e:
            raise TransportError(f'{method}: no receipt after {self.receipt_timeout}s') from e
        except requests.exceptions.RequestException as e:
            logger.error(f'Ledger send {method} failed: {e}')
            raise TransportError(f'{method}: {e}') from e

        if receipt.get('status') == 0:
            raise RejectedByLedger(method, 'transaction reverted')

        logger.debug(f'{method} from {context.sender} mined in block {receipt.get("blockNumber")}')
        return receipt

    def get_events(
        self,
        kind: str,
        from_block: int,
        to_block: int,
        argument_filters: Optional[Dict[str, Any]] = None,
        contract: str = APP_CONTRACT,
    ) -> List[Mapping[str, Any]]:
        """
        Fetch decoded logs of one event kind in [from_block, to_block].

        Raises:
            TransportError on network errors
        """
        event = getattr(self._contract(contract).events, kind)

        try:
            return list(event.get_logs(
                argument_filters=argument_filters,
                from_block=from_block,
                to_block=to_block,
            ))
        except requests.exceptions.RequestException as e:
            raise TransportError(f'{kind} logs: {e}') from e
