"""
classquest.exceptions — Gamification Error Hierarchy
=====================================================

Every error raised by the store and the services derives from
:class:`GamificationError`.  :class:`~classquest.services.session.GamificationSession`
catches the whole family and converts it into an
:class:`~classquest.engine.results.Outcome`, so none of these reach the UI.

Expected, user-facing results (not enough coins, item not owned) are
``Outcome`` values, not exceptions.  :class:`InsufficientFunds` only exists
so the store's conditional update can report a rejected debit to the wallet.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base exception for the gamification engine.

    Parameters
    ----------
    message : Developer-facing description.
    user_id : The user whose state was being touched, when known.
    operation : Store or service operation name (e.g. ``"append_ledger_entry"``).
    """

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        operation: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.operation = operation

    def to_dict(self) -> dict[str, str | None]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_id": self.user_id,
            "operation": self.operation,
        }


class StoreUnavailable(GamificationError):
    """A remote read, write or subscribe failed due to connectivity."""


class InsufficientFunds(GamificationError):
    """A conditional debit was rejected because the balance is too low."""

    def __init__(self, message: str, *, balance: int | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.balance = balance


class PartialFailure(GamificationError):
    """The ledger append succeeded but the coin credit did not.

    The XP award is real; the coin bonus is not.
    """

    def __init__(
        self,
        message: str,
        *,
        xp_amount: int,
        coins_missed: int,
        **kwargs,
    ) -> None:
        super().__init__(message, **kwargs)
        self.xp_amount = xp_amount
        self.coins_missed = coins_missed


class InvariantViolation(GamificationError):
    """More than one equipped inventory entry was observed for a user."""

    def __init__(self, message: str, *, equipped_item_ids: list[int], **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.equipped_item_ids = equipped_item_ids
