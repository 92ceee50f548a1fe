"""
shark/token.py - Value-transfer capability used by the registry.

The core only needs two calls: pull an entry fee into custody, and push a
payout out of it. Two bindings ship here:

  - InMemoryToken: a local ledger with balances and allowances. Used by
    tests and by the arena when no chain is configured.
  - ERC20Token: an ERC-20 contract driven through web3.py, with the custody
    wallet signing every transaction via eth-account.

Install the chain binding with: pip install shark-tournament[wallet]
"""

import logging
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)


# ============================================================================
# Protocol
# ============================================================================


@dataclass
class TransferResult:
    """Outcome of an outbound transfer."""

    success: bool
    tx_hash: str | None = None
    error: str | None = None


class TokenTransfer(Protocol):
    """Interface the registry and payout engine call into."""

    def transfer_in(self, sender: str, amount: int) -> bool:
        """Pull ``amount`` previously authorized by ``sender`` into custody."""
        ...

    def transfer_out(self, recipient: str, amount: int) -> TransferResult:
        """Send ``amount`` from custody to ``recipient``."""
        ...


# ============================================================================
# In-memory ledger
# ============================================================================


class InMemoryToken:
    """Fungible-token ledger held in process memory.

    Mirrors ERC-20 semantics closely enough for the tournament flow:
    players ``approve`` the custody account, ``transfer_in`` spends that
    allowance, ``transfer_out`` moves custody funds to a recipient.
    """

    def __init__(self, custody: str = "custody"):
        self.custody = custody
        self._balances: dict[str, int] = {}
        self._allowances: dict[str, int] = {}  # owner -> allowance granted to custody
        self.fail_recipients: set[str] = set()  # recipients whose payouts are refused

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._balances[account] = self._balances.get(account, 0) + amount

    def approve(self, owner: str, amount: int) -> None:
        """Let custody pull up to ``amount`` from ``owner``."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self._allowances[owner] = amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str) -> int:
        return self._allowances.get(owner, 0)

    def transfer_in(self, sender: str, amount: int) -> bool:
        if self.allowance(sender) < amount:
            logger.debug(f"transfer_in refused: {sender} allowance {self.allowance(sender)} < {amount}")
            return False
        if self.balance_of(sender) < amount:
            logger.debug(f"transfer_in refused: {sender} balance {self.balance_of(sender)} < {amount}")
            return False

        self._allowances[sender] -= amount
        self._balances[sender] -= amount
        self._balances[self.custody] = self.balance_of(self.custody) + amount
        return True

    def transfer_out(self, recipient: str, amount: int) -> TransferResult:
        if recipient in self.fail_recipients:
            return TransferResult(success=False, error=f"recipient {recipient} rejected transfer")
        if self.balance_of(self.custody) < amount:
            return TransferResult(success=False, error="custody balance too low")

        self._balances[self.custody] -= amount
        self._balances[recipient] = self.balance_of(recipient) + amount
        return TransferResult(success=True)


# ============================================================================
# ERC-20 over web3
# ============================================================================

# Minimal ERC-20 ABI: only the functions we call
ERC20_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "name": "transferFrom",
        "type": "function",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
        "stateMutability": "nonpayable",
    },
    {
        "name": "balanceOf",
        "type": "function",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "name": "allowance",
        "type": "function",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
]


def _require_web3():
    """Import and return Web3, raising a clear error if not installed."""
    try:
        from web3 import Web3
        return Web3
    except ImportError:
        raise ImportError(
            "web3 is required for token operations. "
            "Install it with: pip install shark-tournament[wallet]"
        )


def _require_eth_account():
    """Import and return eth_account, raising a clear error if not installed."""
    try:
        import eth_account
        return eth_account
    except ImportError:
        raise ImportError(
            "eth-account is required for wallet operations. "
            "Install it with: pip install shark-tournament[wallet]"
        )


def load_custody_account(private_key: str | None):
    """Load the custody LocalAccount from a hex private key.

    Returns None if no key is given. The 0x prefix is optional.
    """
    if not private_key:
        return None

    eth_account = _require_eth_account()
    key = private_key if private_key.startswith("0x") else "0x" + private_key
    return eth_account.Account.from_key(key)


class ERC20Token:
    """ERC-20 binding. The custody account is both spender and payer.

    Players approve the custody address on the token contract before
    joining; ``transfer_in`` then calls ``transferFrom(player, custody,
    fee)`` and ``transfer_out`` calls ``transfer(recipient, amount)``.
    """

    def __init__(
        self,
        account,
        rpc_url: str,
        token_address: str,
        receipt_timeout: int = 30,
        gas: int = 200000,
        w3=None,
    ):
        self.account = account
        self.receipt_timeout = receipt_timeout
        self.gas = gas

        if w3 is None:
            Web3 = _require_web3()
            w3 = Web3(Web3.HTTPProvider(rpc_url))
            token_address = Web3.to_checksum_address(token_address)
        self.w3 = w3
        self.contract = w3.eth.contract(address=token_address, abi=ERC20_ABI)

    @property
    def custody(self) -> str:
        return self.account.address

    def checksum(self, address: str) -> str:
        # web3 rejects addresses that are not in checksum case
        return self.w3.to_checksum_address(address)

    def balance_of(self, account: str) -> int:
        return self.contract.functions.balanceOf(self.checksum(account)).call()

    def allowance(self, owner: str) -> int:
        return self.contract.functions.allowance(self.checksum(owner), self.custody).call()

    def transfer_in(self, sender: str, amount: int) -> bool:
        # Check first so an obvious shortfall doesn't burn gas on a revert
        try:
            sender = self.checksum(sender)
            if self.allowance(sender) < amount or self.balance_of(sender) < amount:
                logger.info(f"transfer_in refused: {sender} has not approved/funded {amount}")
                return False
        except Exception as e:
            logger.warning(f"Failed to read allowance for {sender}: {e}")
            return False

        result = self._send(self.contract.functions.transferFrom(sender, self.custody, amount))
        if not result.success:
            logger.warning(f"transferFrom {sender} -> custody failed: {result.error}")
        return result.success

    def transfer_out(self, recipient: str, amount: int) -> TransferResult:
        try:
            recipient = self.checksum(recipient)
        except Exception as e:
            logger.warning(f"transfer custody -> {recipient} ({amount}) failed: bad address: {e}")
            return TransferResult(success=False, error=f"invalid address {recipient}: {e}")
        result = self._send(self.contract.functions.transfer(recipient, amount))
        if not result.success:
            logger.warning(f"transfer custody -> {recipient} ({amount}) failed: {result.error}")
        return result

    def _send(self, fn) -> TransferResult:
        """Build, sign, send, and wait for one contract call."""
        try:
            tx = fn.build_transaction({
                "from": self.account.address,
                "nonce": self.w3.eth.get_transaction_count(self.account.address),
                "gas": self.gas,
                "gasPrice": self.w3.eth.gas_price,
            })
            signed = self.account.sign_transaction(tx)
            tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            return TransferResult(success=False, error=str(e))

        if receipt["status"] != 1:
            return TransferResult(success=False, tx_hash=tx_hash.hex(), error="transaction reverted")

        logger.info(f"Token tx confirmed in block {receipt['blockNumber']}: {tx_hash.hex()}")
        return TransferResult(success=True, tx_hash=tx_hash.hex())
