from __future__ import annotations
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, String, create_engine, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

from calconnect.config import DEFAULT_DATABASE_URL
from calconnect.models import AvailableCalendars, CredentialRecord, ProviderToken
from calconnect.utils import as_utc, utcnow

log = logging.getLogger("calconnect.storage")

Base = declarative_base()

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _utcnow_naive() -> datetime:
    return utcnow().replace(tzinfo=None)


class CredentialRow(Base):
    __tablename__ = "credential_records"
    user_id = Column(String, primary_key=True)
    # Legacy flat (pre per-provider) Google token; cleared on the next Google write.
    access_token = Column(String)
    refresh_token = Column(String)
    scope = Column(String)
    token_type = Column(String)
    expiry_date = Column(DateTime)
    id_token = Column(String)
    updated_at = Column(DateTime, default=_utcnow_naive)

    tokens = relationship(
        "ProviderTokenRow",
        back_populates="record",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProviderTokenRow(Base):
    __tablename__ = "provider_tokens"
    user_id = Column(String, ForeignKey("credential_records.user_id"), primary_key=True)
    provider = Column(String, primary_key=True)
    access_token = Column(String, nullable=False)
    refresh_token = Column(String)
    scope = Column(String, nullable=False, default="")
    token_type = Column(String, nullable=False, default="Bearer")
    expiry_date = Column(DateTime, nullable=False)
    id_token = Column(String)
    updated_at = Column(DateTime, default=_utcnow_naive)

    record = relationship("CredentialRow", back_populates="tokens")


def make_engine(url: str = DEFAULT_DATABASE_URL):
    kwargs = {}
    if url in _MEMORY_URLS:
        # one shared connection, otherwise every checkout sees an empty database
        kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(url, echo=False, future=True, **kwargs)


def _to_token(row) -> ProviderToken:
    return ProviderToken(
        access_token=row.access_token,
        refresh_token=row.refresh_token,
        scope=row.scope or "",
        token_type=row.token_type or "Bearer",
        expiry_date=as_utc(row.expiry_date),
        id_token=row.id_token,
    )


def _to_record(row: CredentialRow) -> CredentialRecord:
    legacy = _to_token(row) if row.access_token and row.expiry_date else None
    return CredentialRecord(
        user_id=row.user_id,
        tokens={t.provider: _to_token(t) for t in row.tokens},
        legacy=legacy,
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
    )


class CredentialStore:
    """One credential record per user, with a token row per connected provider."""

    def __init__(self, url: str = DEFAULT_DATABASE_URL):
        self.url = url
        self.engine = make_engine(url)
        Base.metadata.create_all(self.engine)
        self.sessions = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    def get(self, user_id: str) -> Optional[CredentialRecord]:
        with self.sessions() as session:
            row = session.get(CredentialRow, user_id)
            return _to_record(row) if row is not None else None

    def all(self) -> List[CredentialRecord]:
        with self.sessions() as session:
            rows = session.scalars(select(CredentialRow).order_by(CredentialRow.user_id)).all()
            return [_to_record(r) for r in rows]

    def upsert_token(self, user_id: str, provider: str, token: ProviderToken) -> CredentialRecord:
        """Create or update ``provider``'s token for ``user_id``; other providers are left alone."""
        now = _utcnow_naive()
        with self.sessions.begin() as session:
            row = session.get(CredentialRow, user_id)
            if row is None:
                log.info("Creating credential record for user %s", user_id)
                row = CredentialRow(user_id=user_id)
                session.add(row)

            tok = next((t for t in row.tokens if t.provider == provider), None)
            if tok is None:
                tok = ProviderTokenRow(user_id=user_id, provider=provider)
                row.tokens.append(tok)
            tok.access_token = token.access_token
            tok.refresh_token = token.refresh_token
            tok.scope = token.scope
            tok.token_type = token.token_type
            tok.expiry_date = as_utc(token.expiry_date).replace(tzinfo=None)
            tok.id_token = token.id_token
            tok.updated_at = now

            if provider == AvailableCalendars.google.value and row.access_token is not None:
                log.info("Migrating legacy flat token for user %s", user_id)
                row.access_token = row.refresh_token = row.scope = None
                row.token_type = row.expiry_date = row.id_token = None

            row.updated_at = now
            session.flush()
            return _to_record(row)

    def close(self) -> None:
        self.engine.dispose()
