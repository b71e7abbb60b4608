from models.base_model import Base, BaseModel
from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship


class User(BaseModel, Base):
    __tablename__ = "users"
    first_name = Column(String(260), nullable=False)
    last_name = Column(String(260), nullable=False)
    username = Column(String(64), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    bio = Column(Text, nullable=True)
    current_city = Column(String(260), nullable=True)
    hometown = Column(String(260), nullable=True)
    # bumped on every write to the refresh token set (compare-and-set guard)
    session_version = Column(Integer, nullable=False, default=0, server_default="0")

    refresh_tokens = relationship(
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
