from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, String, Text
from gatelink.database import Base


class Link(Base):
    __tablename__ = "links"

    id = Column(String, primary_key=True, index=True)
    original_url = Column(Text, nullable=False)
    title = Column(String, nullable=False)
    views = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class VerificationSession(Base):
    __tablename__ = "sessions"

    id = Column(String, primary_key=True, index=True)
    # plain reference: links can be deleted while their sessions live on
    link_id = Column(String, nullable=False, index=True)
    step = Column(Integer, nullable=False, default=1)
    verified_steps = Column(JSON, nullable=False, default=list)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Ad(Base):
    __tablename__ = "ads"

    id = Column(Integer, primary_key=True, autoincrement=True)
    placement = Column(String, nullable=False, index=True)
    content = Column(Text, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
