import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from timesync.models.goal import Goal
from timesync.models.mapping import ProjectGoalMapping
from timesync.services.errors import Conflict, GoalNotFound, MappingNotFound

log = logging.getLogger(__name__)


class MappingResolver:
    """
    Resolves remote project ids to local goals and manages the mappings.

    Every lookup filters on the owning user and re-checks goal ownership; no
    result is cached, so a mapping of one user can never leak to another.
    """

    def __init__(self, db: Session):
        self.db = db

    def _goal_owned_by(self, goal_id: int, user_id: int) -> Optional[Goal]:
        return self.db.query(Goal).filter(Goal.id == goal_id, Goal.user_id == user_id).first()

    def _active_mapping(self, user_id: int, external_project_id: str) -> Optional[ProjectGoalMapping]:
        return self.db.query(ProjectGoalMapping).filter(
            ProjectGoalMapping.user_id == user_id,
            ProjectGoalMapping.external_project_id == external_project_id,
            ProjectGoalMapping.is_active == True,
        ).first()

    def _commit_unique(self, external_project_id: str) -> None:
        # A concurrent request can activate the same project between check and write
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict(f"An active mapping for project '{external_project_id}' already exists")

    def resolve(self, user_id: int, external_project_id: Optional[str]) -> Optional[int]:
        """Goal to apply to an entry of this project, or None."""
        if not external_project_id:
            return None

        mapping = self._active_mapping(user_id, external_project_id)
        if not mapping or not mapping.auto_categorize:
            return None

        if not self._goal_owned_by(mapping.goal_id, user_id):
            log.warning(
                f"Mapping {mapping.id} of user {user_id} points to goal {mapping.goal_id} "
                f"the user does not own; ignoring"
            )
            return None

        log.trace(f"Resolved project {external_project_id} to goal {mapping.goal_id} for user {user_id}")
        return mapping.goal_id

    def project_for_goal(self, user_id: int, goal_id: int) -> Optional[str]:
        """Remote project of the newest active mapping to this goal, or None."""
        if not self._goal_owned_by(goal_id, user_id):
            raise GoalNotFound(f"Goal {goal_id} not found")
        mapping = self.db.query(ProjectGoalMapping).filter(
            ProjectGoalMapping.user_id == user_id,
            ProjectGoalMapping.goal_id == goal_id,
            ProjectGoalMapping.is_active == True,
        ).order_by(ProjectGoalMapping.id.desc()).first()
        return mapping.external_project_id if mapping else None

    def list_mappings(self, user_id: int, include_inactive: bool = True) -> List[ProjectGoalMapping]:
        query = self.db.query(ProjectGoalMapping).filter(ProjectGoalMapping.user_id == user_id)
        if not include_inactive:
            query = query.filter(ProjectGoalMapping.is_active == True)
        return query.order_by(ProjectGoalMapping.created_at.desc(), ProjectGoalMapping.id.desc()).all()

    def get_mapping(self, user_id: int, mapping_id: int) -> ProjectGoalMapping:
        mapping = self.db.query(ProjectGoalMapping).filter(
            ProjectGoalMapping.id == mapping_id,
            ProjectGoalMapping.user_id == user_id,
        ).first()
        if not mapping:
            raise MappingNotFound(f"Mapping {mapping_id} not found")
        return mapping

    def create_mapping(
        self,
        user_id: int,
        external_project_id: str,
        goal_id: int,
        auto_categorize: bool = True,
    ) -> ProjectGoalMapping:
        if not self._goal_owned_by(goal_id, user_id):
            raise GoalNotFound(f"Goal {goal_id} not found")

        existing = self._active_mapping(user_id, external_project_id)
        if existing:
            raise Conflict(
                f"An active mapping for project '{external_project_id}' already exists (id {existing.id})"
            )

        mapping = ProjectGoalMapping(
            user_id=user_id,
            external_project_id=external_project_id,
            goal_id=goal_id,
            is_active=True,
            auto_categorize=auto_categorize,
        )
        self.db.add(mapping)
        self._commit_unique(external_project_id)
        self.db.refresh(mapping)
        log.info(f"Created mapping {mapping.id}: project {external_project_id} -> goal {goal_id} (user {user_id})")
        return mapping

    def update_mapping(
        self,
        user_id: int,
        mapping_id: int,
        goal_id: Optional[int] = None,
        is_active: Optional[bool] = None,
        auto_categorize: Optional[bool] = None,
    ) -> ProjectGoalMapping:
        mapping = self.get_mapping(user_id, mapping_id)

        if goal_id is not None and goal_id != mapping.goal_id:
            if not self._goal_owned_by(goal_id, user_id):
                raise GoalNotFound(f"Goal {goal_id} not found")
            mapping.goal_id = goal_id

        if is_active is True and not mapping.is_active:
            existing = self._active_mapping(user_id, mapping.external_project_id)
            if existing and existing.id != mapping.id:
                raise Conflict(
                    f"An active mapping for project '{mapping.external_project_id}' already exists (id {existing.id})"
                )
        if is_active is not None:
            mapping.is_active = is_active
        if auto_categorize is not None:
            mapping.auto_categorize = auto_categorize

        self._commit_unique(mapping.external_project_id)
        self.db.refresh(mapping)
        log.info(f"Updated mapping {mapping.id} (active={mapping.is_active}, auto={mapping.auto_categorize})")
        return mapping

    def delete_mapping(self, user_id: int, mapping_id: int) -> None:
        """Remove a mapping. Entries already categorised keep their goal."""
        mapping = self.get_mapping(user_id, mapping_id)
        self.db.delete(mapping)
        self.db.commit()
        log.info(f"Deleted mapping {mapping_id} (user {user_id})")
