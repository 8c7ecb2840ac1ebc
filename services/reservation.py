"""Reservation domain service logic."""
from __future__ import annotations

import datetime
from typing import Any, Mapping, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import (
    COPY_AVAILABLE,
    RESERVATION_CLAIMED,
    RESERVATION_STATUSES,
    RESERVATION_WAITING,
    Book,
    Reservation,
    db,
    utcnow,
)

from .base import CirculationService
from .errors import CirculationError, InvalidStateError, NotFoundError
from .pagination import Page, paginate


class ReservationService(CirculationService):
    """Holds on titles whose copies are all out.

    Status changes are free-form between the known statuses; only sending a
    notification is restricted to waiting reservations.
    """

    def list_reservations(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
    ) -> Page:
        return paginate(
            Reservation.query,
            Reservation,
            filters=filters,
            page=page,
            limit=limit or self._setting('DEFAULT_PAGE_SIZE'),
            sort=sort,
            default_sort='-reservation_date',
        )

    def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        return db.session.get(Reservation, reservation_id)

    def create_reservation(self, *, member_id: int, book_id: int, notes: str = '') -> Reservation:
        try:
            with self._transaction():
                member = self._get_member(member_id, '预约')

                book = db.session.get(Book, book_id)
                if not book:
                    raise NotFoundError('未找到该图书。')
                if not book.copies:
                    raise InvalidStateError('该图书没有任何副本。')

                existing = Reservation.query.filter(
                    Reservation.member_id == member.id,
                    Reservation.book_id == book.id,
                    Reservation.status.in_([RESERVATION_WAITING, RESERVATION_CLAIMED]),
                ).first()
                if existing:
                    raise InvalidStateError('读者已预约过该图书。')

                if any(entry.book_title == book.title for entry in member.current_borrowings):
                    raise InvalidStateError('读者正在借阅该图书，无需预约。')

                if any(copy.status == COPY_AVAILABLE for copy in book.copies):
                    raise InvalidStateError('该图书有可借副本，无需预约。')

                reserved_at = utcnow()
                reservation = Reservation(
                    member_id=member.id,
                    member_code=member.member_code,
                    member_name=member.full_name,
                    book_id=book.id,
                    book_title=book.title,
                    reservation_date=reserved_at,
                    expiry_date=reserved_at + datetime.timedelta(days=self._setting('RESERVATION_HOLD_DAYS')),
                    status=RESERVATION_WAITING,
                    notification_sent=False,
                    notes=notes or '',
                )
                db.session.add(reservation)
                db.session.flush()
            current_app.logger.info(
                'Reservation %s placed: member=%s book=%s',
                reservation.id, member.member_code, book.id,
            )
            return reservation
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Reservation transaction failed: %s', exc)
            db.session.rollback()
            raise CirculationError('预约失败，请稍后再试。') from exc

    def update_status(self, reservation_id: int, status: str, notes: Optional[str] = None) -> Reservation:
        try:
            with self._transaction():
                reservation = db.session.get(Reservation, reservation_id)
                if not reservation:
                    raise NotFoundError('未找到该预约记录。')
                if status not in RESERVATION_STATUSES:
                    raise InvalidStateError(f'无效的预约状态：{status}。')
                previous = reservation.status
                reservation.status = status
                reservation.notes = self._append_note(reservation.notes, '状态更新备注', notes)
                db.session.flush()
            current_app.logger.info('Reservation %s: %s -> %s', reservation_id, previous, status)
            return reservation
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Reservation status update failed: %s', exc)
            db.session.rollback()
            raise CirculationError('更新预约状态失败。') from exc

    def send_notification(self, reservation_id: int) -> Reservation:
        try:
            with self._transaction():
                reservation = db.session.get(Reservation, reservation_id)
                if not reservation:
                    raise NotFoundError('未找到该预约记录。')
                if reservation.status != RESERVATION_WAITING:
                    raise InvalidStateError(f'预约当前状态为 {reservation.status}，无法发送通知。')
                reservation.notification_sent = True
                reservation.notification_date = utcnow()
                db.session.flush()
            current_app.logger.info('Reservation %s: notification sent', reservation_id)
            return reservation
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Reservation notification failed: %s', exc)
            db.session.rollback()
            raise CirculationError('发送通知失败。') from exc
