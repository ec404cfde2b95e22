"""Import users and their owned hives from the old document-store export."""

import logging
from typing import Any, Iterable, Mapping

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Hive, User
from .utils import is_valid_hive_id

logger = logging.getLogger(__name__)


async def import_users(session: AsyncSession, documents: Iterable[Mapping[str, Any]]) -> int:
    """Create missing users and hives; returns the number of hives added.

    ``ownedHives`` entries may be bare ``"HIVE-001"`` strings or full hive
    documents. Hives that already exist are left alone.
    """
    added = 0
    seen: set[str] = set()
    for doc in documents:
        email = (doc.get("email") or "").strip().lower()
        if not email:
            logger.warning("Skipping user without e-mail: %r", doc.get("name"))
            continue
        user = (await session.execute(select(User).where(User.email == email))).scalars().first()
        if user is None:
            user = User(name=doc.get("name") or email, email=email, role=doc.get("role") or "user")
            session.add(user)
            await session.flush()

        for entry in doc.get("ownedHives") or []:
            hive_id = entry.get("id") if isinstance(entry, dict) else entry
            if not is_valid_hive_id(hive_id):
                logger.warning("Skipping malformed hive entry %r for %s", entry, email)
                continue
            if hive_id in seen or await session.get(Hive, hive_id) is not None:
                continue
            seen.add(hive_id)
            session.add(Hive.from_legacy(entry, user.id))
            added += 1

    await session.commit()
    return added
