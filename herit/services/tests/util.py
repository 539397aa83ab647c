"""Testing helpers."""

from contextlib import contextmanager
from typing import Any, Optional

from flask import Flask

from .. import util
from ..models import DBUser


@contextmanager
def temporary_db(database_url: str = 'sqlite:///:memory:',
                 create: bool = True, drop: bool = True):
    """Provide an in-memory sqlite database for testing purposes."""
    app = Flask('foo')
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    with app.app_context():
        util.init_app(app)
        if create:
            util.create_all()
        try:
            with util.transaction():
                yield util.current_session()
        finally:
            if drop:
                util.drop_all()


def make_user(session: Any, email: str = 'first@last.ie',
              password_hash: Optional[str] = None, **fields: Any) -> DBUser:
    """Add a user who has just registered."""
    db_user = DBUser(email=email, password_hash=password_hash,
                     first_name=fields.pop('first_name', 'First'),
                     last_name=fields.pop('last_name', 'Last'),
                     legal_consents={}, **fields)
    session.add(db_user)
    session.commit()
    return db_user
