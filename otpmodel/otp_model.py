from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


class OTPEntry(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(index=True)
    code: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime = Field(index=True)


class PendingSignupEntry(SQLModel, table=True):
    email: str = Field(primary_key=True)
    password_hash: str
    name: str
    role: str = "user"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime
