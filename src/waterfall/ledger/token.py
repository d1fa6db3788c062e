"""Token primitives — fungible balances with historical checkpoints.

Token models any asset the vault touches: the distressed underlying
assets, the recovery asset, and (via ClaimRecord) the per-tranche claim
record. Every balance write is checkpointed at (block, seq) so balances
and supply can be read as of a past block or a past write sequence.

ClaimRecord adds the mint/burn capability. It holds an immutable
back-reference to the address of the vault that owns it and refuses
mint or burn from any other caller. The reference is an identity used
for authorization only; the record never calls into the vault.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass

from waterfall.errors import EconomicError, ValidationError
from waterfall.ledger.chain import Chain


ZERO_ADDRESS = "0x" + "0" * 40


@dataclass(frozen=True)
class Checkpoint:
    """Value of a balance or supply after a write."""
    block: int
    seq: int
    value: int


class _History:
    """Append-only list of checkpoints, queryable by block or by seq."""

    def __init__(self) -> None:
        self._points: list[Checkpoint] = []

    def write(self, chain: Chain, value: int) -> None:
        self._points.append(Checkpoint(chain.block_number, chain.next_seq(), value))

    @property
    def latest(self) -> int:
        return self._points[-1].value if self._points else 0

    def at_block(self, block: int) -> int:
        idx = bisect_right([p.block for p in self._points], block)
        return self._points[idx - 1].value if idx else 0

    def at_seq(self, seq: int) -> int:
        idx = bisect_right([p.seq for p in self._points], seq)
        return self._points[idx - 1].value if idx else 0


class Token:
    """A fungible balance table.

    Balances are in base units (integers). `move` is the ledger-level
    transfer; callers are trusted to have authority over `src`.
    """

    def __init__(self, symbol: str, decimals: int, chain: Chain) -> None:
        if not 0 <= decimals <= 18:
            raise ValidationError(f"Unsupported decimals: {decimals}")
        self.symbol = symbol
        self.decimals = decimals
        self._chain = chain
        self._balances: dict[str, _History] = {}
        self._supply = _History()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def balance_of(self, holder: str) -> int:
        history = self._balances.get(holder)
        return history.latest if history else 0

    def balance_at_block(self, holder: str, block: int) -> int:
        history = self._balances.get(holder)
        return history.at_block(block) if history else 0

    def balance_at_seq(self, holder: str, seq: int) -> int:
        history = self._balances.get(holder)
        return history.at_seq(seq) if history else 0

    @property
    def total_supply(self) -> int:
        return self._supply.latest

    def total_supply_at_seq(self, seq: int) -> int:
        return self._supply.at_seq(seq)

    def holders_at_block(self, block: int) -> dict[str, int]:
        """All non-zero balances as of the end of a block."""
        result: dict[str, int] = {}
        for holder, history in self._balances.items():
            value = history.at_block(block)
            if value > 0:
                result[holder] = value
        return result

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def move(self, src: str, dst: str, amount: int) -> None:
        if amount < 0:
            raise ValidationError("Transfer amount must not be negative")
        if amount == 0 or src == dst:
            return
        balance = self.balance_of(src)
        if balance < amount:
            raise EconomicError(
                f"{self.symbol}: insufficient balance for {src} "
                f"({balance} < {amount})"
            )
        self._write(src, balance - amount)
        self._write(dst, self.balance_of(dst) + amount)

    def issue(self, holder: str, amount: int) -> None:
        """Create supply out of thin air (test fixtures, faucets)."""
        if amount <= 0:
            raise ValidationError("Issued amount must be positive")
        self._write(holder, self.balance_of(holder) + amount)
        self._supply.write(self._chain, self._supply.latest + amount)

    def destroy(self, holder: str, amount: int) -> None:
        if amount <= 0:
            raise ValidationError("Destroyed amount must be positive")
        balance = self.balance_of(holder)
        if balance < amount:
            raise EconomicError(
                f"{self.symbol}: cannot destroy {amount} from {holder} holding {balance}"
            )
        self._write(holder, balance - amount)
        self._supply.write(self._chain, self._supply.latest - amount)

    def _write(self, holder: str, value: int) -> None:
        self._balances.setdefault(holder, _History()).write(self._chain, value)


class ClaimRecord(Token):
    """Transferable, tranche-specific claim record with vault-only mint/burn.

    Tracks two supplies:
    - total_supply: outstanding units (drops on redemption burns).
    - total_issued: cumulative units ever minted (face value).
    """

    DECIMALS = 18

    def __init__(self, symbol: str, vault_address: str, chain: Chain) -> None:
        super().__init__(symbol, self.DECIMALS, chain)
        self._vault_address = vault_address
        self._issued = _History()

    @property
    def vault_address(self) -> str:
        return self._vault_address

    @property
    def total_issued(self) -> int:
        return self._issued.latest

    def total_issued_at_seq(self, seq: int) -> int:
        return self._issued.at_seq(seq)

    def transfer(self, src: str, dst: str, amount: int) -> None:
        """Holder-initiated transfer of claim-record units."""
        if dst == ZERO_ADDRESS:
            raise ValidationError("Cannot transfer to the zero address")
        self.move(src, dst, amount)

    def mint(self, caller: str, holder: str, amount: int) -> None:
        self._authorize(caller)
        self.issue(holder, amount)
        self._issued.write(self._chain, self._issued.latest + amount)

    def burn(self, caller: str, holder: str, amount: int) -> None:
        self._authorize(caller)
        self.destroy(holder, amount)

    def _authorize(self, caller: str) -> None:
        if caller != self._vault_address:
            raise ValidationError(
                f"{self.symbol}: only vault {self._vault_address} may mint or burn"
            )


def to_wad(amount: int, decimals: int) -> int:
    """Scale a native amount up to 18 decimals."""
    return amount * 10 ** (18 - decimals)


def from_wad(amount: int, decimals: int) -> int:
    """Scale an 18-decimal amount down to native precision (floor)."""
    return amount // 10 ** (18 - decimals)


def normalize_address(address: str) -> str:
    """Lower-case 0x-prefixed 20-byte hex; raises on anything else."""
    value = address.lower()
    if not value.startswith("0x") or len(value) != 42:
        raise ValidationError(f"Not an address: {address!r}")
    try:
        int(value[2:], 16)
    except ValueError:
        raise ValidationError(f"Not an address: {address!r}") from None
    return value
