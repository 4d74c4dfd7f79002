"""
classquest.database.seed — Default Cosmetic Catalog Seeder
===========================================================

One avatar border per cosmetic style so the shop is usable on first start.
Idempotent: items are matched by name, and existing rows (including admin
price edits) are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from classquest.constants import COSMETIC_STYLES
from classquest.database.models import ShopCatalogItem

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default catalog — name → (style, cost, min_level, description)
# ---------------------------------------------------------------------------
DEFAULT_SHOP_ITEMS: dict[str, tuple[str, int, int, str]] = {
    "Blue Border": ("border_blue", 50, 1, "A calm blue frame for your avatar"),
    "Green Border": ("border_green", 50, 1, "A fresh green frame"),
    "Red Border": ("border_red", 50, 1, "A bold red frame"),
    "Bronze Border": ("border_bronze", 100, 2, "Third place never looked so good"),
    "Silver Border": ("border_silver", 200, 3, "A polished silver frame"),
    "Gold Border": ("border_gold", 400, 5, "For the top of the class"),
    "Neon Border": ("border_neon", 600, 6, "A glowing magenta frame"),
    "Fire Border": ("border_fire", 800, 8, "A dashed blazing frame"),
    "Ice Border": ("border_ice", 800, 8, "A glowing frosty frame"),
    "Rainbow Border": ("border_rainbow", 1500, 10, "The rarest frame in school"),
}


def seed_shop_catalog(engine: Engine) -> int:
    """Insert missing default shop items.  Returns the number inserted."""
    inserted = 0
    with Session(engine) as session:
        existing = set(session.scalars(select(ShopCatalogItem.name)).all())
        for name, (style, cost, min_level, description) in DEFAULT_SHOP_ITEMS.items():
            if name in existing:
                continue
            if style not in COSMETIC_STYLES:
                logger.warning("Skipping %s: unknown cosmetic style %s", name, style)
                continue
            session.add(ShopCatalogItem(
                name=name,
                description=description,
                cost=cost,
                min_level=min_level,
                cosmetic_style=style,
                is_active=True,
            ))
            inserted += 1
        session.commit()

    if inserted:
        logger.info("Seeded %d default shop items", inserted)
    return inserted
