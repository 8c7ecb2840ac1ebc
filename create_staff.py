#!/usr/bin/env python3
"""
Create or update a circulation desk staff record.
Usage:
  python create_staff.py --code ST001 --name "Nguyen Van A"

Loans and returns are always recorded against a staff member, so at least one
must exist before the circulation services can be used. Run from the project
root; the app's SQLAlchemy configuration is used.
"""
import argparse
import sys

from app import create_app
from models import db, Staff


def main(argv=None):
    parser = argparse.ArgumentParser(description='Create or update a staff record')
    parser.add_argument('--code', '-c', required=True, help='staff code')
    parser.add_argument('--name', '-n', required=True, help='full name')
    parser.add_argument('--db-uri', help='optional DB URI to override app config')
    args = parser.parse_args(argv)

    config = {}
    if args.db_uri:
        config['SQLALCHEMY_DATABASE_URI'] = args.db_uri

    app = create_app(config)
    with app.app_context():
        db.create_all()
        staff = Staff.query.filter_by(staff_code=args.code).first()
        if not staff:
            staff = Staff(staff_code=args.code, full_name=args.name)
            db.session.add(staff)
            db.session.commit()
            print(f"Created staff {args.code} (id={staff.id})")
            return 0
        staff.full_name = args.name
        db.session.commit()
        print(f"Updated staff {args.code} (id={staff.id})")
        return 0


if __name__ == '__main__':
    try:
        sys.exit(main())
    except Exception as e:
        print('Error:', e)
        sys.exit(1)
