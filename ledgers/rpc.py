"""JSON-RPC clients for remote ledgers.

Each ledger service exposes a small JSON-RPC 2.0 surface over HTTP:

Asset registry:
    ownerOf(assetId) -> address
    isApprovedForTransfer(operator, assetId) -> bool
    transferFrom(operator, from, to, assetId) -> txId
    revertTransfer(txId)

Currency ledger:
    balanceOf(owner) -> amount
    allowance(owner, spender) -> amount
    transferFrom(spender, payer, payee, amount) -> txId
    revertTransfer(txId)

Amounts travel as decimal strings so 256-bit values survive JSON.
"""
import logging
from typing import Any, Optional

import requests

from . import LedgerError, TransferReceipt, TransferRejected

logger = logging.getLogger(__name__)

class RPCError(LedgerError):
    """Base exception for RPC errors"""
    def __init__(self, message: str, code: Optional[int] = None, method: Optional[str] = None):
        self.code = code
        self.method = method
        super().__init__(f"RPC Error [{code}] in {method}: {message}" if code else message)

class NodeConnectionError(RPCError):
    """Raised when connection to the ledger service fails"""
    pass

class NodeAuthError(RPCError):
    """Raised when authentication failed"""
    pass

class LedgerRPCError(RPCError, TransferRejected):
    """Ledger-specific error returned by the service

    Common error codes:
    -1  - General error during processing
    -5  - Invalid parameter
    -10 - Asset not found
    -20 - Not authorized (missing approval or allowance)
    -21 - Insufficient balance
    -30 - Unknown transaction id
    """
    ERROR_MESSAGES = {
        -1: "General error during processing",
        -5: "Invalid parameter",
        -10: "Asset not found",
        -20: "Not authorized",
        -21: "Insufficient balance",
        -30: "Unknown transaction id",
    }

    def __init__(self, message: str, code: int, method: str):
        standard_msg = self.ERROR_MESSAGES.get(code, "Unknown error")
        full_msg = f"{standard_msg} - {message}" if message != standard_msg else message
        super().__init__(full_msg, code, method)

class RPCMethod:
    """Descriptor class for RPC methods"""
    def __init__(self, method_name: str):
        self.method_name = method_name

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self

        def caller(*args) -> Any:
            return obj._call_method(self.method_name, *args)

        return caller

class LedgerRPC:
    """JSON-RPC 2.0 client for one ledger service"""

    def __init__(self, url: str, user: str = '', password: str = '', timeout: float = 10):
        self.url = url
        self.timeout = timeout

        self.session = requests.Session()
        if user:
            self.session.auth = (user, password)
        self.session.headers['content-type'] = 'application/json'

        self._request_id = 0

    def _get_request_id(self) -> int:
        """Get unique request ID"""
        self._request_id += 1
        return self._request_id

    def _call_method(self, method: str, *args) -> Any:
        """Make RPC call to the ledger service

        Args:
            method: RPC method name
            *args: Method arguments

        Returns:
            Response from the service

        Raises:
            NodeConnectionError: Connection to the service failed
            NodeAuthError: Authentication failed
            LedgerRPCError: The service returned a ledger error
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": list(args),
            "id": self._get_request_id()
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)

            if response.status_code == 401:
                raise NodeAuthError("Authentication failed - check rpc_user/rpc_password")

            # Try to parse response even if status code is error
            result = response.json()

            if 'error' in result and result['error'] is not None:
                error = result['error']
                raise LedgerRPCError(
                    error.get('message', 'Unknown error'),
                    error.get('code', -1),
                    method
                )

            response.raise_for_status()
            return result['result']

        except requests.exceptions.Timeout as e:
            raise NodeConnectionError(
                f"Request timed out after {self.timeout} seconds"
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NodeConnectionError(
                f"Failed to connect to ledger at {self.url}"
            ) from e
        except requests.exceptions.HTTPError as e:
            raise NodeConnectionError(
                f"HTTP error occurred: {str(e)}"
            ) from e
        except requests.exceptions.RequestException as e:
            raise NodeConnectionError(
                f"Request failed: {str(e)}"
            ) from e
        except (KeyError, ValueError) as e:
            raise NodeConnectionError(
                f"Invalid response format: {str(e)}"
            ) from e

    ownerOf = RPCMethod('ownerOf')
    isApprovedForTransfer = RPCMethod('isApprovedForTransfer')
    balanceOf = RPCMethod('balanceOf')
    allowance = RPCMethod('allowance')
    transferFrom = RPCMethod('transferFrom')
    revertTransfer = RPCMethod('revertTransfer')


class RPCAssetRegistry:
    """Asset registry backed by a remote ledger service."""

    name = 'assets'

    def __init__(self, client: LedgerRPC):
        self.client = client

    def owner_of(self, asset_id: int) -> str:
        return self.client.ownerOf(str(asset_id))

    def is_approved_for_transfer(self, operator: str, asset_id: int) -> bool:
        return bool(self.client.isApprovedForTransfer(operator, str(asset_id)))

    def transfer(self, operator: str, sender: str, recipient: str, asset_id: int) -> TransferReceipt:
        tx_id = self.client.transferFrom(operator, sender, recipient, str(asset_id))
        logger.info(f"Asset {asset_id} transfer {sender} -> {recipient} submitted as {tx_id}")
        return TransferReceipt(
            ledger=self.name,
            operator=operator,
            sender=sender,
            recipient=recipient,
            asset_id=asset_id,
            reference=tx_id,
        )

    def revert(self, receipt: TransferReceipt) -> None:
        self.client.revertTransfer(receipt.reference)


class RPCCurrencyLedger:
    """Currency ledger backed by a remote ledger service."""

    name = 'currency'

    def __init__(self, client: LedgerRPC):
        self.client = client

    def balance_of(self, owner: str) -> int:
        return int(self.client.balanceOf(owner))

    def allowance(self, owner: str, spender: str) -> int:
        return int(self.client.allowance(owner, spender))

    def transfer_from(self, spender: str, payer: str, payee: str, amount: int) -> TransferReceipt:
        tx_id = self.client.transferFrom(spender, payer, payee, str(amount))
        logger.info(f"Currency transfer {payer} -> {payee} of {amount} submitted as {tx_id}")
        return TransferReceipt(
            ledger=self.name,
            operator=spender,
            sender=payer,
            recipient=payee,
            amount=amount,
            reference=tx_id,
        )

    def revert(self, receipt: TransferReceipt) -> None:
        self.client.revertTransfer(receipt.reference)


def connect_ledgers(ledger_settings: dict):
    """Build the asset registry and currency ledger clients from [ledgers] settings."""
    common = {
        'user': ledger_settings.get('rpc_user', ''),
        'password': ledger_settings.get('rpc_password', ''),
        'timeout': ledger_settings.get('rpc_timeout', 10),
    }
    registry = RPCAssetRegistry(LedgerRPC(ledger_settings['asset_registry_url'], **common))
    currency = RPCCurrencyLedger(LedgerRPC(ledger_settings['currency_ledger_url'], **common))
    return registry, currency
