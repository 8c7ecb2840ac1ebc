import datetime
import itertools

import pytest
from app import create_app
from models import COPY_AVAILABLE, MEMBER_ACTIVE, Book, BookCopy, Member, Staff, db, utcnow


@pytest.fixture
def app():
    app = create_app('testing', {'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:'})
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def make_member(app):
    counter = itertools.count(1)

    def _make(**overrides):
        number = next(counter)
        fields = {
            'member_code': f'M{number:04d}',
            'full_name': f'Reader {number}',
            'status': MEMBER_ACTIVE,
            'expiry_date': utcnow().date() + datetime.timedelta(days=365),
        }
        fields.update(overrides)
        member = Member(**fields)
        db.session.add(member)
        db.session.commit()
        return member

    return _make


@pytest.fixture
def make_book(app):
    def _make(title='Dế Mèn phiêu lưu ký', statuses=(COPY_AVAILABLE,)):
        book = Book(title=title, author='Tô Hoài')
        for index, status in enumerate(statuses, start=1):
            book.copies.append(BookCopy(copy_code=f'C{index:03d}', status=status))
        db.session.add(book)
        db.session.commit()
        return book

    return _make


@pytest.fixture
def staff(app):
    clerk = Staff(staff_code='ST001', full_name='Front Desk')
    db.session.add(clerk)
    db.session.commit()
    return clerk
