"""SQLAlchemy models for the Herit credential store."""

from datetime import datetime
import uuid

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, \
    Integer, String, Text, JSON
from sqlalchemy.orm import relationship
from pytz import UTC

db: SQLAlchemy = SQLAlchemy()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(tz=UTC)


class DBUser(db.Model):  # type: ignore
    """Persistence for :class:`domain.User`."""

    __tablename__ = 'app_users'

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    auth_provider = Column(String(50), nullable=False, default='email')
    session_version = Column(Integer, nullable=False, default=1)
    """Carried in the access token claims; starts at 1."""

    first_name = Column(String(100))
    last_name = Column(String(100))
    phone_number = Column(String(50))
    date_of_birth = Column(String(20))
    profile_photo_url = Column(Text)
    address_line_1 = Column(String(255))
    address_line_2 = Column(String(255))
    city = Column(String(100))
    county = Column(String(100))
    eircode = Column(String(20))

    onboarding_status = Column(String(20), nullable=False,
                               default='not_started')
    onboarding_current_step = Column(String(20), nullable=False,
                                     default='personal_info')
    onboarding_completed_at = Column(DateTime(timezone=True))

    personal_info_completed = Column(Boolean, nullable=False, default=False)
    personal_info_completed_at = Column(DateTime(timezone=True))
    signature_completed = Column(Boolean, nullable=False, default=False)
    signature_completed_at = Column(DateTime(timezone=True))
    legal_consent_completed = Column(Boolean, nullable=False, default=False)
    legal_consent_completed_at = Column(DateTime(timezone=True))
    verification_completed = Column(Boolean, nullable=False, default=False)
    verification_completed_at = Column(DateTime(timezone=True))

    legal_consents = Column(JSON, nullable=False, default=dict)
    """Consent identifier -> consent record, see :class:`domain.ConsentRecord`."""

    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    refresh_tokens = relationship('DBRefreshToken', back_populates='user',
                                  cascade='all, delete-orphan')
    signatures = relationship('DBSignature', back_populates='user',
                              cascade='all, delete-orphan')


class DBRefreshToken(db.Model):  # type: ignore
    """
    Validity record of an issued refresh token.

    Only the SHA-256 hex digest of the token is stored. Every token descended
    from the same login shares a ``family``.
    """

    __tablename__ = 'app_refresh_tokens'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(ForeignKey('app_users.id'), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    family = Column(String(36), nullable=False, index=True)
    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    user = relationship('DBUser', back_populates='refresh_tokens')


class DBSignature(db.Model):  # type: ignore
    """A signature drawn, typed, or chosen from a template by a user."""

    __tablename__ = 'signatures'

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(ForeignKey('app_users.id'), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    signature_type = Column(String(20), nullable=False)
    data = Column(Text, nullable=False)
    hash = Column(String(64), nullable=False)
    """SHA-256 hex digest of :attr:`data`."""

    font_name = Column(String(100))
    font_class_name = Column(String(100))
    signature_metadata = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)
    last_used = Column(DateTime(timezone=True))

    user = relationship('DBUser', back_populates='signatures')


class DBSignatureUsage(db.Model):  # type: ignore
    """
    Append-only record of a signature being applied to a document.

    ``signature_id`` is the identifier supplied by the client and is not
    constrained to :class:`DBSignature`; the snapshot in the consent record is
    the authoritative copy.
    """

    __tablename__ = 'signature_usage'

    id = Column(String(36), primary_key=True, default=_uuid)
    signature_id = Column(String(255), nullable=False, index=True)
    user_id = Column(ForeignKey('app_users.id'), nullable=False, index=True)
    document_type = Column(String(50), nullable=False)
    document_id = Column(String(255), nullable=False)
    usage_metadata = Column(JSON)
    created_at = Column(DateTime(timezone=True), default=_now)


class DBAuditEvent(db.Model):  # type: ignore
    """Audit trail entry."""

    __tablename__ = 'audit_events'
    __table_args__ = (
        Index('ix_audit_events_user_type', 'user_id', 'event_type'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), nullable=True)
    event_type = Column(String(100), nullable=False)
    event_action = Column(String(100))
    resource_type = Column(String(100))
    resource_id = Column(String(255))
    event_data = Column(JSON)
    ip_address = Column(String(64))
    user_agent = Column(Text)
    session_id = Column(String(255))
    timestamp = Column(DateTime(timezone=True), default=_now)
