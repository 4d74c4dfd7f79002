"""
classquest.services.xp_service — XPAwardEngine
===============================================

Records an XP-earning action:

1. validate the action and amount;
2. derive ``coins = xp // coin_divisor``;
3. append one immutable ledger entry (the store advances XP and level);
4. credit the coins through the :class:`CoinWallet`.

A failed append aborts everything.  A failed credit after a successful
append is a :class:`PartialFailure`: the XP is real, the coins are not.
"""

from __future__ import annotations

import logging

from classquest.constants import DEFAULT_ACTION_XP
from classquest.database.engine import run_db
from classquest.database.models import ActionType
from classquest.engine.profile import XPLedgerEntry
from classquest.engine.results import XPAward
from classquest.exceptions import GamificationError, PartialFailure
from classquest.services.sync_service import SyncReconciler
from classquest.services.wallet_service import CoinWallet
from classquest.store.protocol import GamificationStore

logger = logging.getLogger(__name__)


def coins_for_xp(xp_amount: int, divisor: int = 10) -> int:
    """1 coin per *divisor* XP, rounded down."""
    return xp_amount // divisor


def resolve_xp_amount(action_type: ActionType | str, xp_amount: int | None) -> tuple[ActionType, int]:
    """Validate the action tag and fill in its default XP.

    Raises ``ValueError`` for unknown actions and for amounts that are not
    positive integers.
    """
    try:
        action = ActionType(action_type)
    except ValueError:
        raise ValueError(f"Unknown action type: {action_type!r}") from None

    if xp_amount is None:
        xp_amount = DEFAULT_ACTION_XP.get(action, 0)
    if isinstance(xp_amount, bool) or not isinstance(xp_amount, int) or xp_amount <= 0:
        raise ValueError(f"xp_amount must be a positive integer, got {xp_amount!r}")
    return action, xp_amount


class XPAwardEngine:
    def __init__(
        self,
        store: GamificationStore,
        user_id: str,
        wallet: CoinWallet,
        reconciler: SyncReconciler,
        *,
        coin_divisor: int = 10,
    ) -> None:
        if coin_divisor <= 0:
            raise ValueError(f"coin_divisor must be positive, got {coin_divisor}")
        self._store = store
        self.user_id = user_id
        self._wallet = wallet
        self._reconciler = reconciler
        self._coin_divisor = coin_divisor

    async def award(
        self,
        action_type: ActionType | str,
        xp_amount: int | None = None,
        metadata: dict | None = None,
    ) -> XPAward:
        """Award XP for one action.

        Raises
        ------
        ValueError
            Unknown action or invalid amount.  Nothing is written.
        StoreUnavailable
            The ledger append failed.  Nothing is written.
        PartialFailure
            The XP was recorded but the coin credit failed.
        """
        action, xp_amount = resolve_xp_amount(action_type, xp_amount)
        coins = coins_for_xp(xp_amount, self._coin_divisor)
        entry = XPLedgerEntry(
            user_id=self.user_id,
            action_type=action,
            xp_amount=xp_amount,
            metadata=dict(metadata or {}),
        )

        self._reconciler.apply_intent(delta_xp=xp_amount)
        try:
            entry_id = await run_db(self._store.append_ledger_entry, entry)
        except Exception:
            self._reconciler.apply_intent(delta_xp=-xp_amount)
            raise

        logger.info(
            "Awarded %d XP (%s, ledger #%s) to user %s",
            xp_amount, action, entry_id, self.user_id,
        )

        if coins > 0:
            try:
                await self._wallet.credit(coins)
            except GamificationError as exc:
                logger.warning(
                    "Coin credit of %d failed for user %s after ledger #%s: %s",
                    coins, self.user_id, entry_id, exc,
                )
                raise PartialFailure(
                    f"{xp_amount} XP recorded but {coins} coin(s) were not credited",
                    xp_amount=xp_amount,
                    coins_missed=coins,
                    user_id=self.user_id,
                    operation="credit",
                ) from exc

        return XPAward(xp_amount=xp_amount, coins_earned=coins)
