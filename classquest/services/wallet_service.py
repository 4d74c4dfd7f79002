"""
classquest.services.wallet_service — CoinWallet
================================================

Spendable balance for one user.  The local balance lives in the
reconciler's cache: every credit / debit is applied there first (intent),
then written to the store; authoritative pushes overwrite it afterwards.

Remote writes use the store's atomic ``increment_balance`` when available.
Otherwise the wallet falls back to read-modify-write serialized by an
``asyncio.Lock``: safe against concurrent calls in this session, but not
against other writers of the same row.
"""

from __future__ import annotations

import asyncio
import logging

from classquest.database.engine import run_db
from classquest.engine.results import Outcome
from classquest.exceptions import InsufficientFunds
from classquest.services.sync_service import SyncReconciler
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"amount must be a non-negative integer, got {amount!r}")


class CoinWallet:
    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        reconciler: SyncReconciler,
    ) -> None:
        self._store = store
        self.user_id = user_id
        self._reconciler = reconciler
        self._lock = asyncio.Lock()
        self._increment = getattr(store, "increment_balance", None)
        if self._increment is None:
            logger.warning(
                "Store %s has no increment_balance; coin updates for user %s "
                "use read-modify-write",
                type(store).__name__, user_id,
            )

    @property
    def balance(self) -> int:
        return self._reconciler.profile.coins

    @property
    def atomic(self) -> bool:
        return self._increment is not None

    async def credit(self, amount: int) -> None:
        """Add *amount* coins.

        Raises
        ------
        StoreUnavailable
            The write failed; the optimistic local credit is reverted.
        """
        _check_amount(amount)
        if amount == 0:
            return

        self._reconciler.apply_intent(delta_coins=amount)
        try:
            await self._write(amount)
        except Exception:
            self._reconciler.apply_intent(delta_coins=-amount)
            raise
        logger.debug("Credited %d coins to user %s", amount, self.user_id)

    async def debit(self, amount: int) -> Outcome:
        """Spend *amount* coins.

        Returns :attr:`Outcome.SUCCESS` or :attr:`Outcome.INSUFFICIENT_FUNDS`;
        the latter changes nothing, locally or remotely.
        """
        _check_amount(amount)
        if amount == 0:
            return Outcome.SUCCESS
        if amount > self.balance:
            return Outcome.INSUFFICIENT_FUNDS

        self._reconciler.apply_intent(delta_coins=-amount)
        try:
            await self._write(-amount)
        except InsufficientFunds as exc:
            self._reconciler.apply_intent(delta_coins=amount)
            logger.info(
                "Debit of %d rejected for user %s (authoritative balance %s)",
                amount, self.user_id, exc.balance,
            )
            return Outcome.INSUFFICIENT_FUNDS
        except Exception:
            self._reconciler.apply_intent(delta_coins=amount)
            raise
        logger.debug("Debited %d coins from user %s", amount, self.user_id)
        return Outcome.SUCCESS

    async def _write(self, delta: int) -> None:
        if self._increment is not None:
            await run_db(self._increment, self.user_id, 0, delta)
            return

        async with self._lock:
            profile = await run_db(self._store.get_profile, self.user_id)
            new_balance = profile.coins + delta
            if new_balance < 0:
                raise InsufficientFunds(
                    f"balance {profile.coins} cannot absorb {delta}",
                    balance=profile.coins,
                    user_id=self.user_id,
                    operation="update_profile",
                )
            await run_db(self._store.update_profile, self.user_id, {"coins": new_balance})
