"""Best-effort resolution of user ids to display identities."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courier.models import User
from courier.schemas.conversation import UserSummary

logger = logging.getLogger(__name__)


class ProfileDirectory:
    """Looks up name and avatar for conversation partners.

    Lookups never fail the caller: ids without a resolvable profile get a
    placeholder identity.
    """

    def resolve(self, db: Session, user_ids: Iterable[str]) -> dict[str, UserSummary]:
        """Return a summary for every id in ``user_ids``."""
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return {}

        found: dict[str, UserSummary] = {}
        try:
            for user in db.scalars(select(User).where(User.user_id.in_(wanted))):
                found[user.user_id] = UserSummary(
                    id=user.user_id,
                    name=user.display_name or UserSummary.placeholder(user.user_id).name,
                    avatar=user.avatar_url or None,
                )
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Profile lookup failed, using placeholders: %s", exc)

        missing = [user_id for user_id in wanted if user_id not in found]
        if missing:
            logger.debug("No profile for %d user(s); using placeholders", len(missing))
        return {user_id: found.get(user_id) or UserSummary.placeholder(user_id) for user_id in wanted}


def get_profile_directory() -> ProfileDirectory:
    """Return the profile directory used by the History API."""
    return ProfileDirectory()
