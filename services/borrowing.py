"""Borrowing domain service logic."""
from __future__ import annotations

import datetime
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from models import (
    CONDITION_DAMAGED,
    CONDITION_GOOD,
    CONDITION_LOST,
    COPY_AVAILABLE,
    COPY_BORROWED,
    COPY_LOST,
    COPY_MAINTENANCE,
    FINE_NONE,
    FINE_UNPAID,
    LOAN_BORROWED,
    LOAN_RETURNED,
    RESERVATION_CLAIMED,
    RESERVATION_WAITING,
    Book,
    BookCopy,
    Borrowing,
    Fine,
    Member,
    MemberBorrowing,
    Reservation,
    Staff,
    as_utc,
    db,
    utcnow,
)

from .base import CirculationService
from .errors import CirculationError, InvalidStateError, NotFoundError
from .identifiers import generate_borrowing_code
from .pagination import Page, paginate

DEFAULT_DAMAGE_REASON = '图书损坏'

_COPY_STATUS_BY_CONDITION = {
    CONDITION_DAMAGED: COPY_MAINTENANCE,
    CONDITION_LOST: COPY_LOST,
}


@dataclass(frozen=True)
class BorrowResult:
    borrowing: Borrowing
    copy: Optional[BookCopy] = None
    fine: Optional[Fine] = None


def days_late(due_date: datetime.datetime, returned_at: datetime.datetime) -> int:
    """Whole days past due, rounding any part of a day up."""
    if returned_at <= due_date:
        return 0
    return math.ceil((returned_at - due_date) / datetime.timedelta(days=1))


class BorrowService(CirculationService):
    """Issues, returns and renews loans; every operation is one transaction."""

    def list_borrowings(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        page: int = 1,
        limit: Optional[int] = None,
        sort: Optional[str] = None,
    ) -> Page:
        return paginate(
            Borrowing.query,
            Borrowing,
            filters=filters,
            page=page,
            limit=limit or self._setting('DEFAULT_PAGE_SIZE'),
            sort=sort,
            default_sort='-borrow_date',
        )

    def get_borrowing(self, borrowing_id: int) -> Optional[Borrowing]:
        return db.session.get(Borrowing, borrowing_id)

    def create_borrowing(
        self,
        *,
        member_id: int,
        book_id: int,
        copy_code: str,
        staff_id: int,
        borrow_date: Optional[datetime.datetime] = None,
        due_date: Optional[datetime.datetime] = None,
        notes: str = '',
    ) -> BorrowResult:
        try:
            with self._transaction():
                member = self._get_member(member_id, '借书')
                if member.fines_unpaid_amount > 0:
                    raise InvalidStateError(f'读者有 {member.fines_unpaid_amount} 元罚款尚未缴纳。')
                max_active = self._setting('MAX_ACTIVE_BORROWINGS')
                if len(member.current_borrowings) >= max_active:
                    raise InvalidStateError(f'读者已借满 {max_active} 本书。')

                book = db.session.get(Book, book_id)
                if not book:
                    raise NotFoundError('未找到该图书。')
                copy = book.find_copy(copy_code)
                if not copy:
                    raise NotFoundError('未找到该图书副本。')
                if copy.status != COPY_AVAILABLE:
                    raise InvalidStateError(f'副本当前状态为 {copy.status}，无法借出。')

                staff = db.session.get(Staff, staff_id)
                if not staff:
                    raise NotFoundError('未找到该工作人员。')

                # codes widen past BR999999, so compare length before text
                last = Borrowing.query.order_by(
                    func.length(Borrowing.borrowing_code).desc(),
                    Borrowing.borrowing_code.desc(),
                ).first()
                borrowing_code = generate_borrowing_code(last.borrowing_code if last else None)

                borrow_date = as_utc(borrow_date) or utcnow()
                if due_date:
                    due_date = as_utc(due_date)
                else:
                    due_date = borrow_date + datetime.timedelta(days=self._setting('LOAN_PERIOD_DAYS'))

                borrowing = Borrowing(
                    borrowing_code=borrowing_code,
                    member_id=member.id,
                    member_code=member.member_code,
                    member_name=member.full_name,
                    book_id=book.id,
                    copy_code=copy.copy_code,
                    book_title=book.title,
                    issued_by_id=staff.id,
                    issued_by_code=staff.staff_code,
                    issued_by_name=staff.full_name,
                    borrow_date=borrow_date,
                    due_date=due_date,
                    status=LOAN_BORROWED,
                    renewal_count=0,
                    notes=notes or '',
                    fine_amount=0,
                    fine_status=FINE_NONE,
                )
                db.session.add(borrowing)

                copy.status = COPY_BORROWED

                member.current_borrowings.append(
                    MemberBorrowing(
                        borrowing=borrowing,
                        copy_code=copy.copy_code,
                        book_title=book.title,
                        due_date=due_date,
                    )
                )
                member.total_borrowed += 1
                member.last_borrowed_at = borrow_date

                waiting = Reservation.query.filter_by(
                    member_id=member.id,
                    book_id=book.id,
                    status=RESERVATION_WAITING,
                ).all()
                for reservation in waiting:
                    reservation.status = RESERVATION_CLAIMED
                db.session.flush()
            current_app.logger.info(
                'Borrowing %s issued: member=%s copy=%s due=%s',
                borrowing_code, member.member_code, copy.copy_code, due_date.isoformat(),
            )
            return BorrowResult(borrowing=borrowing, copy=copy)
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Borrow transaction failed: %s', exc)
            db.session.rollback()
            raise CirculationError('借书失败，请稍后再试。') from exc

    def return_borrowing(
        self,
        borrowing_id: int,
        *,
        staff_id: int,
        return_date: Optional[datetime.datetime] = None,
        condition: Optional[str] = None,
        fine_amount: int = 0,
        fine_reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BorrowResult:
        try:
            with self._transaction():
                borrowing = db.session.get(Borrowing, borrowing_id)
                if not borrowing:
                    raise NotFoundError('未找到该借阅记录。')
                if borrowing.status == LOAN_RETURNED:
                    raise InvalidStateError('该图书已归还。')

                staff = db.session.get(Staff, staff_id)
                if not staff:
                    raise NotFoundError('未找到该工作人员。')

                member = db.session.get(Member, borrowing.member_id)
                returned_at = as_utc(return_date) or utcnow()

                amount = 0
                reasons = []
                late = days_late(as_utc(borrowing.due_date), returned_at)
                if late:
                    amount = late * self._setting('DAILY_OVERDUE_FINE')
                    reasons.append(f'逾期 {late} 天归还')
                    if member:
                        member.total_overdue += 1

                if fine_amount and fine_amount > 0:
                    amount += fine_amount
                    reasons.append(fine_reason or DEFAULT_DAMAGE_REASON)
                reason = '；'.join(reasons)

                borrowing.return_date = returned_at
                borrowing.returned_to_id = staff.id
                borrowing.returned_to_code = staff.staff_code
                borrowing.returned_to_name = staff.full_name
                borrowing.status = LOAN_RETURNED
                borrowing.notes = self._append_note(borrowing.notes, '归还备注', notes)
                borrowing.fine_amount = amount
                borrowing.fine_reason = reason or None
                borrowing.fine_status = FINE_UNPAID if amount > 0 else FINE_NONE

                fine = None
                if amount > 0:
                    fine = Fine(
                        member_id=borrowing.member_id,
                        member_code=borrowing.member_code,
                        member_name=borrowing.member_name,
                        borrowing=borrowing,
                        book_id=borrowing.book_id,
                        book_title=borrowing.book_title,
                        copy_code=borrowing.copy_code,
                        amount=amount,
                        reason=reason,
                        issue_date=returned_at,
                        status=FINE_UNPAID,
                    )
                    db.session.add(fine)
                    if member:
                        member.fines_total_amount += amount
                        member.fines_unpaid_amount += amount

                copy = BookCopy.query.filter_by(
                    book_id=borrowing.book_id,
                    copy_code=borrowing.copy_code,
                ).first()
                if copy:
                    copy.status = _COPY_STATUS_BY_CONDITION.get(condition, COPY_AVAILABLE)
                    copy.condition = condition or CONDITION_GOOD
                else:
                    current_app.logger.warning(
                        'Copy %s of book %s no longer exists; status not updated',
                        borrowing.copy_code, borrowing.book_id,
                    )

                if member:
                    for entry in list(member.current_borrowings):
                        if entry.borrowing_id == borrowing.id:
                            member.current_borrowings.remove(entry)
                db.session.flush()
            current_app.logger.info(
                'Borrowing %s returned: days_late=%s fine=%s',
                borrowing.borrowing_code, late, amount,
            )
            return BorrowResult(borrowing=borrowing, copy=copy, fine=fine)
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Return transaction failed: %s', exc)
            db.session.rollback()
            raise CirculationError('还书失败，请稍后再试。') from exc

    def renew_borrowing(
        self,
        borrowing_id: int,
        *,
        new_due_date: Optional[datetime.datetime] = None,
        notes: Optional[str] = None,
    ) -> BorrowResult:
        try:
            with self._transaction():
                borrowing = db.session.get(Borrowing, borrowing_id)
                if not borrowing:
                    raise NotFoundError('未找到该借阅记录。')
                if borrowing.status == LOAN_RETURNED:
                    raise InvalidStateError('该图书已归还，无法续借。')
                max_renewals = self._setting('MAX_RENEWALS')
                if borrowing.renewal_count >= max_renewals:
                    raise InvalidStateError(f'已超过最大续借次数（{max_renewals} 次）。')

                reserved = Reservation.query.filter_by(
                    book_id=borrowing.book_id,
                    status=RESERVATION_WAITING,
                ).first()
                if reserved:
                    raise InvalidStateError('该图书已被其他读者预约，无法续借。')

                if new_due_date:
                    due_date = as_utc(new_due_date)
                else:
                    due_date = as_utc(borrowing.due_date) + datetime.timedelta(
                        days=self._setting('LOAN_PERIOD_DAYS')
                    )

                borrowing.due_date = due_date
                borrowing.renewal_count += 1
                borrowing.notes = self._append_note(borrowing.notes, '续借备注', notes)

                entries = MemberBorrowing.query.filter_by(
                    member_id=borrowing.member_id,
                    borrowing_id=borrowing.id,
                ).all()
                for entry in entries:
                    entry.due_date = due_date
                db.session.flush()
            current_app.logger.info(
                'Borrowing %s renewed (%s): due=%s',
                borrowing.borrowing_code, borrowing.renewal_count, due_date.isoformat(),
            )
            return BorrowResult(borrowing=borrowing)
        except CirculationError:
            raise
        except SQLAlchemyError as exc:
            current_app.logger.exception('Renew transaction failed: %s', exc)
            db.session.rollback()
            raise CirculationError('续借失败，请稍后再试。') from exc
