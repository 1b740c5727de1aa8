"""Owned token balances with split/join conservation.

A `Balance` can only be created empty or by splitting it off an existing
balance (or an account); value moves between balances, it is never minted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from .errors import ErrorCode, SpecError

if TYPE_CHECKING:
    from .types import AccountState, ChainAddress, SwapState


@dataclass
class Balance:
    value: int = 0

    def split(self, amount: int) -> "Balance":
        if amount < 0:
            raise SpecError(ErrorCode.INVALID_AMOUNT, "split amount must be >= 0")
        if amount > self.value:
            raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient balance")
        self.value -= amount
        return Balance(amount)

    def join(self, other: "Balance") -> int:
        self.value += other.value
        other.value = 0
        return self.value

    def withdraw_all(self) -> "Balance":
        return self.split(self.value)


def _account(state: SwapState, address: ChainAddress) -> AccountState:
    from .types import AccountState

    acct = state.accounts.get(address)
    if acct is None:
        acct = AccountState(address=address)
        state.accounts[address] = acct
    return acct


def debit_account(state: SwapState, address: ChainAddress, token: ChainAddress, amount: int) -> Balance:
    """Move `amount` of `token` out of an account into a fresh balance."""
    if amount < 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "debit amount must be >= 0")
    acct = state.accounts.get(address)
    if acct is None or acct.balance_of(token) < amount:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient account balance")
    acct.balances[token] = acct.balance_of(token) - amount
    return Balance(amount)


def credit_account(state: SwapState, address: ChainAddress, token: ChainAddress, balance: Balance) -> None:
    """Join `balance` into an account, creating the account if needed."""
    if balance.value == 0:
        return
    acct = _account(state, address)
    acct.balances[token] = acct.balance_of(token) + balance.value
    balance.value = 0
