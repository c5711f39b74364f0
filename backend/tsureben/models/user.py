from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, UniqueConstraint
from sqlalchemy import JSON

from tsureben.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")
    hashed_password = Column(String(255), nullable=False)
    grade = Column(String(8), nullable=False, default="")
    class_name = Column("class", String(8), nullable=False, default="")
    number = Column(String(8), nullable=False, default="")
    share_scope = Column(String(32), nullable=False, default="学年のみ")
    teacher = Column(Boolean, nullable=False, default=False)
    tureben_requests = Column(JSON, nullable=False, default=list)
    hidden_requests = Column(JSON, nullable=False, default=list)
    hidden_mates = Column(JSON, nullable=False, default=list)
    scores = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )
