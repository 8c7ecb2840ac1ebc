"""Shared plumbing for the circulation services."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Optional

from flask import current_app

from models import MEMBER_ACTIVE, Member, db, utcnow

from .errors import InvalidStateError, NotFoundError


class CirculationService:
    """Base for services whose operations each run in a single transaction."""

    @contextmanager
    def _transaction(self):
        if not db.session().in_transaction():
            with db.session.begin():
                yield
            return
        # session autobegan on an earlier read; finish that transaction here
        try:
            yield
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def _setting(self, key: str):
        return current_app.config[key]

    def _get_member(self, member_id: int, action: str) -> Member:
        member = db.session.get(Member, member_id)
        if not member:
            raise NotFoundError('未找到该读者。')
        if member.status != MEMBER_ACTIVE:
            raise InvalidStateError(f'读者当前状态为 {member.status}，无法{action}。')
        if member.expiry_date <= utcnow().date():
            raise InvalidStateError('借书证已过期。')
        return member

    @staticmethod
    def _append_note(existing: Optional[str], label: str, note: Optional[str]) -> str:
        if not note:
            return existing or ''
        return f'{existing or ""} [{label}: {note}]'.strip()
