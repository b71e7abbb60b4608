"""
RefreshToken model: one row per currently valid refresh token of a user.
The rows owned by a user form that user's session set; a token is valid only
while its row exists.
Fields:
- token (unique) - the issued refresh token
- user_id (String(36)) - FK to users.id
- expires_at - naive UTC expiry copied from the token, used for purging
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base_model import BaseModel, Base


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(1024), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=True, index=True)

    user = relationship("User", back_populates="refresh_tokens")

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} expires_at={self.expires_at}>"
