"""Project-to-goal mapping model."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.sql import func
from timesync.database import Base


class ProjectGoalMapping(Base):
    """Binds a remote project to a local goal for automatic categorisation."""

    __tablename__ = "project_goal_mappings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    external_project_id = Column(String(64), nullable=False)
    goal_id = Column(Integer, ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False)
    auto_categorize = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        # At most one active mapping per (user, remote project)
        Index(
            'uq_active_project_mapping',
            'user_id',
            'external_project_id',
            unique=True,
            sqlite_where=text('is_active = 1'),
            postgresql_where=text('is_active'),
        ),
    )

    def __repr__(self):
        return f"<ProjectGoalMapping(id={self.id}, user={self.user_id}, project='{self.external_project_id}', goal={self.goal_id})>"
