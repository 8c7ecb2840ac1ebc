import datetime
from datetime import timezone
from flask_sqlalchemy import SQLAlchemy

# SQLAlchemy instance (initialized by app)
db = SQLAlchemy()

MEMBER_ACTIVE = 'active'
MEMBER_SUSPENDED = 'suspended'
MEMBER_LOCKED = 'locked'

COPY_AVAILABLE = 'available'
COPY_BORROWED = 'borrowed'
COPY_MAINTENANCE = 'maintenance'
COPY_LOST = 'lost'

CONDITION_GOOD = 'good'
CONDITION_DAMAGED = 'damaged'
CONDITION_LOST = 'lost'

LOAN_BORROWED = 'borrowed'
LOAN_RETURNED = 'returned'

FINE_NONE = 'none'
FINE_UNPAID = 'unpaid'

RESERVATION_WAITING = 'waiting'
RESERVATION_CLAIMED = 'claimed'
RESERVATION_CANCELLED = 'cancelled'
RESERVATION_EXPIRED = 'expired'
RESERVATION_STATUSES = (
    RESERVATION_WAITING,
    RESERVATION_CLAIMED,
    RESERVATION_CANCELLED,
    RESERVATION_EXPIRED,
)


def utcnow():
    return datetime.datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value):
    return value.isoformat() if value else None


class Member(db.Model):
    __tablename__ = 'member'
    id = db.Column(db.Integer, primary_key=True)
    member_code = db.Column(db.String(40), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=MEMBER_ACTIVE)
    expiry_date = db.Column(db.Date, nullable=False)
    # fines
    fines_total_amount = db.Column(db.Integer, nullable=False, default=0)
    fines_unpaid_amount = db.Column(db.Integer, nullable=False, default=0)
    # borrowing history
    total_borrowed = db.Column(db.Integer, nullable=False, default=0)
    total_overdue = db.Column(db.Integer, nullable=False, default=0)
    last_borrowed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    current_borrowings = db.relationship(
        'MemberBorrowing',
        backref='member',
        cascade='all, delete-orphan',
        order_by='MemberBorrowing.id',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'member_code': self.member_code,
            'full_name': self.full_name,
            'status': self.status,
            'expiry_date': _iso(self.expiry_date),
            'fines': {
                'total_amount': self.fines_total_amount,
                'unpaid_amount': self.fines_unpaid_amount,
            },
            'borrowing_history': {
                'total_borrowed': self.total_borrowed,
                'total_overdue': self.total_overdue,
                'last_borrowed_at': _iso(self.last_borrowed_at),
            },
            'current_borrowings': [entry.to_dict() for entry in self.current_borrowings],
        }


class MemberBorrowing(db.Model):
    """One entry of a member's current-borrowings list."""
    __tablename__ = 'member_borrowing'
    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    borrowing_id = db.Column(db.Integer, db.ForeignKey('borrowing.id'), nullable=False)
    copy_code = db.Column(db.String(40), nullable=False)
    book_title = db.Column(db.String(200), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    borrowing = db.relationship('Borrowing')

    def to_dict(self):
        return {
            'borrowing_id': self.borrowing_id,
            'copy_code': self.copy_code,
            'book_title': self.book_title,
            'due_date': _iso(self.due_date),
        }


class Book(db.Model):
    __tablename__ = 'book'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    author = db.Column(db.String(120), nullable=True)

    copies = db.relationship(
        'BookCopy',
        backref='book',
        cascade='all, delete-orphan',
        order_by='BookCopy.id',
    )

    def find_copy(self, copy_code):
        return next((copy for copy in self.copies if copy.copy_code == copy_code), None)

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'author': self.author,
            'copies': [copy.to_dict() for copy in self.copies],
        }


class BookCopy(db.Model):
    __tablename__ = 'book_copy'
    __table_args__ = (db.UniqueConstraint('book_id', 'copy_code'),)
    id = db.Column(db.Integer, primary_key=True)
    book_id = db.Column(db.Integer, db.ForeignKey('book.id'), nullable=False)
    copy_code = db.Column(db.String(40), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=COPY_AVAILABLE)
    condition = db.Column(db.String(20), nullable=False, default=CONDITION_GOOD)

    def to_dict(self):
        return {
            'copy_code': self.copy_code,
            'status': self.status,
            'condition': self.condition,
        }


class Staff(db.Model):
    __tablename__ = 'staff'
    id = db.Column(db.Integer, primary_key=True)
    staff_code = db.Column(db.String(40), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'staff_code': self.staff_code,
            'full_name': self.full_name,
        }


class Borrowing(db.Model):
    __tablename__ = 'borrowing'
    id = db.Column(db.Integer, primary_key=True)
    borrowing_code = db.Column(db.String(20), unique=True, nullable=False)
    # snapshots taken when the loan is issued; never re-derived
    member_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    member_code = db.Column(db.String(40), nullable=False)
    member_name = db.Column(db.String(120), nullable=False)
    book_id = db.Column(db.Integer, db.ForeignKey('book.id'), nullable=False)
    copy_code = db.Column(db.String(40), nullable=False)
    book_title = db.Column(db.String(200), nullable=False)
    issued_by_id = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=False)
    issued_by_code = db.Column(db.String(40), nullable=False)
    issued_by_name = db.Column(db.String(120), nullable=False)
    returned_to_id = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    returned_to_code = db.Column(db.String(40), nullable=True)
    returned_to_name = db.Column(db.String(120), nullable=True)

    borrow_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(db.String(20), nullable=False, default=LOAN_BORROWED)
    renewal_count = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=False, default='')

    fine_amount = db.Column(db.Integer, nullable=False, default=0)
    fine_reason = db.Column(db.String(255), nullable=True)
    fine_status = db.Column(db.String(20), nullable=False, default=FINE_NONE)

    def to_dict(self):
        returned_to = None
        if self.returned_to_id:
            returned_to = {
                'id': self.returned_to_id,
                'staff_code': self.returned_to_code,
                'full_name': self.returned_to_name,
            }
        return {
            'id': self.id,
            'borrowing_code': self.borrowing_code,
            'member': {
                'id': self.member_id,
                'member_code': self.member_code,
                'full_name': self.member_name,
            },
            'book_copy': {
                'book_id': self.book_id,
                'copy_code': self.copy_code,
                'title': self.book_title,
            },
            'issued_by': {
                'id': self.issued_by_id,
                'staff_code': self.issued_by_code,
                'full_name': self.issued_by_name,
            },
            'returned_to': returned_to,
            'borrow_date': _iso(self.borrow_date),
            'due_date': _iso(self.due_date),
            'return_date': _iso(self.return_date),
            'status': self.status,
            'renewal_count': self.renewal_count,
            'notes': self.notes,
            'fine': {
                'amount': self.fine_amount,
                'reason': self.fine_reason,
                'status': self.fine_status,
            },
        }


class Reservation(db.Model):
    __tablename__ = 'reservation'
    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    member_code = db.Column(db.String(40), nullable=False)
    member_name = db.Column(db.String(120), nullable=False)
    book_id = db.Column(db.Integer, db.ForeignKey('book.id'), nullable=False)
    book_title = db.Column(db.String(200), nullable=False)
    reservation_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expiry_date = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=RESERVATION_WAITING)
    notification_sent = db.Column(db.Boolean, nullable=False, default=False)
    notification_date = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=False, default='')

    def to_dict(self):
        return {
            'id': self.id,
            'member': {
                'id': self.member_id,
                'member_code': self.member_code,
                'full_name': self.member_name,
            },
            'book': {
                'id': self.book_id,
                'title': self.book_title,
            },
            'reservation_date': _iso(self.reservation_date),
            'expiry_date': _iso(self.expiry_date),
            'status': self.status,
            'notification_sent': self.notification_sent,
            'notification_date': _iso(self.notification_date),
            'notes': self.notes,
        }


class Fine(db.Model):
    __tablename__ = 'fine'
    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    member_code = db.Column(db.String(40), nullable=False)
    member_name = db.Column(db.String(120), nullable=False)
    borrowing_id = db.Column(db.Integer, db.ForeignKey('borrowing.id'), nullable=False)
    book_id = db.Column(db.Integer, db.ForeignKey('book.id'), nullable=False)
    book_title = db.Column(db.String(200), nullable=False)
    copy_code = db.Column(db.String(40), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    issue_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    status = db.Column(db.String(20), nullable=False, default=FINE_UNPAID)

    borrowing = db.relationship('Borrowing', backref=db.backref('fines', lazy=True))

    def to_dict(self):
        return {
            'id': self.id,
            'member': {
                'id': self.member_id,
                'member_code': self.member_code,
                'full_name': self.member_name,
            },
            'borrowing_id': self.borrowing_id,
            'book': {
                'id': self.book_id,
                'title': self.book_title,
                'copy_code': self.copy_code,
            },
            'amount': self.amount,
            'reason': self.reason,
            'issue_date': _iso(self.issue_date),
            'status': self.status,
        }
