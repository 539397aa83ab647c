"""Create, authenticate, and load Herit user accounts."""

from typing import Optional
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.session import Session

from .. import domain
from . import passwords
from .exceptions import NoSuchUser, UserExists, AuthenticationFailed, \
    RegistrationFailed
from .models import DBUser
from .util import transaction, as_utc

logger = logging.getLogger(__name__)

EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PASSWORD_LENGTH = 8


def normalize_email(email: str) -> str:
    """E-mail addresses are stored and looked up in lower case."""
    return email.strip().lower()


def register(email: str, password: str, forename: str,
             surname: str) -> domain.User:
    """
    Create a new user with e-mail/password credentials.

    Raises
    ------
    :class:`RegistrationFailed`
        A field is empty, the e-mail is malformed, or the password is too
        short or too long.
    :class:`UserExists`
        An account already uses this e-mail address.

    """
    if not (email and password and forename and surname):
        raise RegistrationFailed('All fields are required')
    email = normalize_email(email)
    if not EMAIL.match(email):
        raise RegistrationFailed('Invalid email format')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise RegistrationFailed(
            f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
        )
    if passwords.too_long(password):
        raise RegistrationFailed(
            f'Password must be at most {passwords.MAX_PASSWORD_BYTES} bytes'
        )

    with transaction() as session:
        if _get_db_user_by_email(email, session) is not None:
            raise UserExists('User already exists')
        db_user = DBUser(
            email=email,
            password_hash=passwords.hash_password(password),
            first_name=forename.strip(),
            last_name=surname.strip(),
            auth_provider='email',
            legal_consents={},
        )
        session.add(db_user)
        try:
            session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration.
            raise UserExists('User already exists') from e
        user = to_domain(db_user)
    logger.info('Registered new user %s', user.user_id)
    return user


def authenticate(email: str, password: str) -> domain.User:
    """
    Verify an e-mail/password pair.

    Raises
    ------
    :class:`AuthenticationFailed`
        Unknown e-mail or wrong password; the two cases are not distinguished.

    """
    with transaction() as session:
        db_user = _get_db_user_by_email(normalize_email(email), session)
        if db_user is None:
            raise AuthenticationFailed('No such user')
        passwords.check_password(password, db_user.password_hash)
        return to_domain(db_user)


def get_user_by_id(user_id: str) -> domain.User:
    """Load a user by ID."""
    with transaction() as session:
        return to_domain(get_db_user(user_id, session))


def get_db_user(user_id: str, session: Session,
                for_update: bool = False) -> DBUser:
    """Load the database row of a user, or raise :class:`NoSuchUser`."""
    query = session.query(DBUser).filter(DBUser.id == user_id)
    if for_update:
        query = query.with_for_update()
    db_user: Optional[DBUser] = query.first()
    if db_user is None:
        raise NoSuchUser(f'No such user: {user_id}')
    return db_user


def to_domain(db_user: DBUser) -> domain.User:
    """Instantiate a :class:`domain.User` from its database row."""
    return domain.User(
        user_id=db_user.id,
        email=db_user.email,
        name=domain.UserFullName(forename=db_user.first_name,
                                 surname=db_user.last_name),
        profile=domain.UserProfile(
            phone_number=db_user.phone_number,
            date_of_birth=db_user.date_of_birth,
            profile_photo_url=db_user.profile_photo_url,
            address_line_1=db_user.address_line_1,
            address_line_2=db_user.address_line_2,
            city=db_user.city,
            county=db_user.county,
            eircode=db_user.eircode,
        ),
        onboarding=domain.OnboardingProgress(
            status=db_user.onboarding_status,
            current_step=db_user.onboarding_current_step,
            personal_info_completed=bool(db_user.personal_info_completed),
            personal_info_completed_at=as_utc(
                db_user.personal_info_completed_at),
            signature_completed=bool(db_user.signature_completed),
            signature_completed_at=as_utc(db_user.signature_completed_at),
            legal_consent_completed=bool(db_user.legal_consent_completed),
            legal_consent_completed_at=as_utc(
                db_user.legal_consent_completed_at),
            verification_completed=bool(db_user.verification_completed),
            verification_completed_at=as_utc(
                db_user.verification_completed_at),
            completed_at=as_utc(db_user.onboarding_completed_at),
        ),
        legal_consents={
            consent_id: domain.ConsentRecord.from_json(record)
            for consent_id, record in (db_user.legal_consents or {}).items()
        },
        auth_provider=db_user.auth_provider,
        created_at=as_utc(db_user.created_at),
        updated_at=as_utc(db_user.updated_at),
    )


def _get_db_user_by_email(email: str, session: Session) -> Optional[DBUser]:
    return session.query(DBUser).filter(DBUser.email == email).first()
