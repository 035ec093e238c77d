from typing import Annotated, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ..database import get_repositories
from ..logger import logger
from ..models import User
from ..repositories.base import Repositories
from ..schemas import (
    DeleteResult, Envelope, OwnerSummary, TodoRead, TodoReadWithOwner,
    UserAdminUpdate, UserRead, UserReadWithTodos,
)
from ..security import get_admin_user

router = APIRouter(prefix="/api/admin", tags=["admin"])

AdminUser = Annotated[User, Depends(get_admin_user)]
Repos = Annotated[Repositories, Depends(get_repositories)]


def user_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


@router.get("/users", response_model=Envelope[List[UserRead]], summary="Get all users (admin only)")
async def read_users(
        admin_user: AdminUser,
        repos: Repos,
        skip: Annotated[int, Query(ge=0)] = 0,
        limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> Envelope[List[UserRead]]:
    """
    Get all users, newest first. Admin access required.
    """
    users = repos.users.get_multi(skip, limit)
    return Envelope(data=[UserRead.model_validate(user) for user in users])


@router.get("/users/{user_id}", response_model=Envelope[UserReadWithTodos], summary="Get user by ID (admin only)")
async def read_user(
        user_id: Annotated[int, Path(...)],
        admin_user: AdminUser,
        repos: Repos,
        todo_skip: Annotated[int, Query(ge=0)] = 0,
        todo_limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> Envelope[UserReadWithTodos]:
    """
    Get user by ID with a page of their todos, oldest first. Admin access required.

    ``todo_count`` is the user's total, so callers can page with
    ``todo_skip`` and ``todo_limit``.
    """
    db_user = repos.users.get(user_id)
    if not db_user:
        raise user_not_found()
    todos = repos.todos.get_by_owner(user_id, skip=todo_skip, limit=todo_limit)
    return Envelope(data=UserReadWithTodos(
        **UserRead.model_validate(db_user).model_dump(),
        todos=[TodoRead.model_validate(todo) for todo in todos],
        todo_count=repos.todos.stats(user_id).total,
    ))


@router.patch("/users/{user_id}", response_model=Envelope[UserRead], summary="Update user (admin only)")
async def update_user(
        user_id: Annotated[int, Path(...)],
        user_update: Annotated[UserAdminUpdate, Body(...)],
        admin_user: AdminUser,
        repos: Repos,
) -> Envelope[UserRead]:
    """
    Change another account's name, role or active flag.
    """
    if user_id == admin_user.id and (
            user_update.is_active is False or user_update.role not in (None, admin_user.role)
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot deactivate or demote themselves",
        )
    try:
        db_user = repos.users.update(user_id, user_update)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not db_user:
        raise user_not_found()
    logger.info(f"Admin {admin_user.id} updated user {user_id}")
    return Envelope(data=UserRead.model_validate(db_user))


@router.delete("/users/{user_id}", response_model=Envelope[DeleteResult], summary="Delete user (admin only)")
async def delete_user(
        user_id: Annotated[int, Path(...)],
        admin_user: AdminUser,
        repos: Repos,
) -> Envelope[DeleteResult]:
    """
    Delete a user together with all of their todos.
    """
    if user_id == admin_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot delete their own account",
        )
    try:
        db_user = repos.users.delete(user_id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not db_user:
        raise user_not_found()
    logger.info(f"Admin {admin_user.id} deleted user {user_id}")
    return Envelope(data=DeleteResult(id=user_id))


@router.get("/todos", response_model=Envelope[List[TodoReadWithOwner]], summary="Get all todos (admin only)")
async def read_all_todos(
        admin_user: AdminUser,
        repos: Repos,
        skip: Annotated[int, Query(ge=0)] = 0,
        limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> Envelope[List[TodoReadWithOwner]]:
    """
    Every user's todos, newest first, each with its owner.
    """
    todos = repos.todos.get_all(skip, limit)
    owners: Dict[int, OwnerSummary] = {}
    result = []
    for todo in todos:
        if todo.owner_id not in owners:
            owner = repos.users.get(todo.owner_id)
            owners[todo.owner_id] = OwnerSummary.model_validate(owner) if owner else None
        result.append(TodoReadWithOwner(
            **TodoRead.model_validate(todo).model_dump(),
            owner=owners[todo.owner_id],
        ))
    return Envelope(data=result)
