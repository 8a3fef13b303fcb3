from typing import List, Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session

from timesync.auth import get_current_active_user
from timesync.database import get_db
from timesync.schemas.auth import User
from timesync.schemas.mapping import MappingCreate, MappingUpdate, MappingInDB
from timesync.services.errors import Conflict, GoalNotFound, MappingNotFound
from timesync.services.mapping_resolver import MappingResolver
from timesync.utils.audit_logger import create_audit_log

router = APIRouter()

@router.post("/", response_model=MappingInDB, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    request: Request,
    mapping: MappingCreate,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Bind a remote project to one of the user's goals."""
    try:
        db_mapping = MappingResolver(db).create_mapping(
            user_id=current_user.id,
            external_project_id=mapping.external_project_id,
            goal_id=mapping.goal_id,
            auto_categorize=mapping.auto_categorize,
        )
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)
    except GoalNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    create_audit_log(
        db=db,
        request=request,
        action="mapping_created",
        entity_type="mapping",
        entity_id=db_mapping.id,
        user=current_user.username,
        details={"external_project_id": db_mapping.external_project_id, "goal_id": db_mapping.goal_id}
    )

    return db_mapping

@router.get("/", response_model=List[MappingInDB])
async def read_mappings(
    include_inactive: bool = True,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """List the user's project mappings."""
    return MappingResolver(db).list_mappings(current_user.id, include_inactive=include_inactive)

@router.get("/{mapping_id}", response_model=MappingInDB)
async def read_mapping(
    mapping_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    try:
        return MappingResolver(db).get_mapping(current_user.id, mapping_id)
    except MappingNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")

@router.patch("/{mapping_id}", response_model=MappingInDB)
async def update_mapping(
    request: Request,
    mapping_id: int,
    mapping: MappingUpdate,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Change the goal or toggle a mapping's flags."""
    update_data = mapping.model_dump(exclude_unset=True)
    try:
        db_mapping = MappingResolver(db).update_mapping(current_user.id, mapping_id, **update_data)
    except MappingNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")
    except GoalNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
    except Conflict as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.message)

    create_audit_log(
        db=db,
        request=request,
        action="mapping_updated",
        entity_type="mapping",
        entity_id=db_mapping.id,
        user=current_user.username,
        details={"updated_fields": list(update_data.keys())}
    )

    return db_mapping

@router.delete("/{mapping_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mapping(
    request: Request,
    mapping_id: int,
    db: Session = Depends(get_db),
    current_user: Annotated[User, Depends(get_current_active_user)] = None
):
    """Delete a mapping. Entries already categorised keep their goal."""
    try:
        MappingResolver(db).delete_mapping(current_user.id, mapping_id)
    except MappingNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mapping not found")

    create_audit_log(
        db=db,
        request=request,
        action="mapping_deleted",
        entity_type="mapping",
        entity_id=mapping_id,
        user=current_user.username
    )
    return None
