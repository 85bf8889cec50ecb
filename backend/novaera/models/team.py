from uuid import uuid4

from sqlalchemy import Column, DateTime, String
from sqlalchemy.sql import func

from novaera.core.database import Base


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    manager_id = Column(String, index=True)
    operator_id = Column(String, index=True)
    nickname = Column(String, nullable=True)
    team_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
