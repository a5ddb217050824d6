"""
Quota-related database models.

Models:
- ApiCredentialConfig: one backend-managed Strava application credential
- CredentialAssignment: which credential a user's calls are billed to
- QuotaStateRow: persisted request counters for one credential
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship

from trailmate.models.base import Base
from trailmate.shared.clock import utcnow


class ApiCredentialConfig(Base):
    """
    Strava API application credential.

    Managed by administrators; read-only for the gateway. Several users can
    share one config, so its limits are a shared budget.
    """

    __tablename__ = "api_credential_configs"

    id = Column(String(36), primary_key=True)
    name = Column(String(100), nullable=True)

    client_id = Column(String(50), nullable=False)
    client_secret = Column(Text, nullable=False)

    daily_limit = Column(Integer, nullable=False, default=1000)
    window_limit = Column(Integer, nullable=False, default=90)  # per 15 minutes

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    assignments = relationship("CredentialAssignment", back_populates="config")

    def __repr__(self):
        return f"<ApiCredentialConfig id={self.id} active={self.is_active}>"


class CredentialAssignment(Base):
    """
    User -> credential mapping.

    At most one assignment per user.
    """

    __tablename__ = "credential_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    config_id = Column(
        String(36),
        ForeignKey("api_credential_configs.id", ondelete="CASCADE"),
        nullable=False
    )
    assigned_at = Column(DateTime, default=utcnow)

    config = relationship("ApiCredentialConfig", back_populates="assignments", lazy="joined")

    def __repr__(self):
        return f"<CredentialAssignment user_id={self.user_id} config_id={self.config_id}>"


class QuotaStateRow(Base):
    """
    Request counters and cool-down for one credential.

    Not a foreign key to api_credential_configs: the shared fallback
    credential has quota state but no config row.
    """

    __tablename__ = "quota_states"

    credential_id = Column(String(36), primary_key=True)

    window_requests = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime, nullable=False)
    daily_requests = Column(Integer, nullable=False, default=0)
    daily_window_start = Column(DateTime, nullable=False)

    is_throttled = Column(Boolean, nullable=False, default=False)
    retry_after = Column(DateTime, nullable=True)
    last_request_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<QuotaStateRow credential_id={self.credential_id} "
            f"window={self.window_requests} daily={self.daily_requests}>"
        )
