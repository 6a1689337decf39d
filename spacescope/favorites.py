"""Favorites and user preferences, persisted in the local SQLite database.

All mutating helpers leave committing to the caller.
"""
from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from spacescope.cache import ENTITY_ENDPOINTS
from spacescope.models import Favorite, Preference

log = logging.getLogger(__name__)

FAVORITE_TYPES: tuple[str, ...] = tuple(ENTITY_ENDPOINTS)

THEMES = ("light", "dark", "system")


def _check_type(entity_type: str) -> str:
    if entity_type not in FAVORITE_TYPES:
        raise ValueError(f"Unknown entity type: {entity_type!r}")
    return entity_type


def _find(session: Session, entity_type: str, entity_id: int) -> Favorite | None:
    return session.execute(
        select(Favorite).where(Favorite.entity_type == entity_type, Favorite.entity_id == entity_id)
    ).scalars().first()


def is_favorite(session: Session, entity_type: str, entity_id: int) -> bool:
    return _find(session, _check_type(entity_type), entity_id) is not None


def add_favorite(session: Session, entity_type: str, entity_id: int) -> bool:
    """Add a favorite. Returns False if it was already present."""
    if _find(session, _check_type(entity_type), entity_id) is not None:
        return False
    session.add(Favorite(entity_type=entity_type, entity_id=entity_id))
    session.flush()
    return True


def remove_favorite(session: Session, entity_type: str, entity_id: int) -> bool:
    """Remove a favorite. Returns False if it was not present."""
    fav = _find(session, _check_type(entity_type), entity_id)
    if fav is None:
        return False
    session.delete(fav)
    session.flush()
    return True


def toggle_favorite(session: Session, entity_type: str, entity_id: int) -> bool:
    """Flip a favorite; returns the new state."""
    if remove_favorite(session, entity_type, entity_id):
        return False
    add_favorite(session, entity_type, entity_id)
    return True


def clear_type(session: Session, entity_type: str) -> None:
    session.execute(delete(Favorite).where(Favorite.entity_type == _check_type(entity_type)))


def clear_all(session: Session) -> None:
    session.execute(delete(Favorite))


def favorite_ids(session: Session, entity_type: str) -> list[int]:
    return list(session.execute(
        select(Favorite.entity_id)
        .where(Favorite.entity_type == _check_type(entity_type))
        .order_by(Favorite.id)
    ).scalars().all())


def favorite_count(session: Session, entity_type: str | None = None) -> int:
    query = select(func.count(Favorite.id))
    if entity_type is not None:
        query = query.where(Favorite.entity_type == _check_type(entity_type))
    return session.execute(query).scalar() or 0


def all_favorites(session: Session) -> dict[str, list[int]]:
    """Every entity type mapped to its favorite ids (empty lists included)."""
    return {t: favorite_ids(session, t) for t in FAVORITE_TYPES}


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


def get_preference(session: Session, key: str, default: str | None = None) -> str | None:
    pref = session.get(Preference, key)
    return pref.value if pref is not None else default


def set_preference(session: Session, key: str, value: str) -> None:
    pref = session.get(Preference, key)
    if pref is None:
        session.add(Preference(key=key, value=value))
    else:
        pref.value = value
    session.flush()
    log.debug("Preference %s set to %r", key, value)
