from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from ..database import get_repositories
from ..models import Priority, User
from ..repositories.base import Repositories
from ..schemas import (
    DeleteResult, Envelope, PageEnvelope,
    TodoCreate, TodoFilters, TodoRead, TodoStats, TodoUpdate,
)
from ..security import get_current_active_user

router = APIRouter(prefix="/api/todos", tags=["todos"])

CurrentUser = Annotated[User, Depends(get_current_active_user)]
Repos = Annotated[Repositories, Depends(get_repositories)]


def todo_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Todo not found")


def list_filters(
        page: Annotated[int, Query(ge=1)] = 1,
        limit: Annotated[int, Query(ge=1, le=100)] = 10,
        completed: Optional[bool] = None,
        priority: Optional[Priority] = None,
        search: Annotated[Optional[str], Query(max_length=200)] = None,
        sort_by: Literal["created_at", "due_date", "priority", "task"] = "created_at",
        sort_order: Literal["asc", "desc"] = "desc",
) -> TodoFilters:
    return TodoFilters(
        page=page,
        limit=limit,
        completed=completed,
        priority=priority,
        search=search.strip() if search else None,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("", response_model=PageEnvelope[TodoRead], summary="List current user todos")
async def list_todos(
        current_user: CurrentUser,
        repos: Repos,
        filters: Annotated[TodoFilters, Depends(list_filters)],
) -> PageEnvelope[TodoRead]:
    """
    Get one page of the current user's todos, filtered and sorted.
    """
    items, total = repos.todos.list_for_owner(current_user.id, filters)
    return PageEnvelope(
        data=[TodoRead.model_validate(todo) for todo in items],
        page=filters.page,
        limit=filters.limit,
        total=total,
    )


@router.post("", response_model=Envelope[TodoRead], status_code=status.HTTP_201_CREATED, summary="Create todo")
async def create_todo(
        todo: Annotated[TodoCreate, Body(...)],
        current_user: CurrentUser,
        repos: Repos,
) -> Envelope[TodoRead]:
    """
    Create a new todo for current user.
    """
    try:
        db_todo = repos.todos.create(todo, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return Envelope(data=TodoRead.model_validate(db_todo))


@router.get("/stats", response_model=Envelope[TodoStats], summary="Todo counts for current user")
async def todo_stats(current_user: CurrentUser, repos: Repos) -> Envelope[TodoStats]:
    return Envelope(data=repos.todos.stats(current_user.id))


@router.get("/{todo_id}", response_model=Envelope[TodoRead], summary="Get todo by ID")
async def read_todo(
        todo_id: Annotated[int, Path(...)],
        current_user: CurrentUser,
        repos: Repos,
) -> Envelope[TodoRead]:
    """
    Get a specific todo owned by current user.
    """
    db_todo = repos.todos.get_user_todo(todo_id, current_user.id)
    if not db_todo:
        raise todo_not_found()
    return Envelope(data=TodoRead.model_validate(db_todo))


@router.put("/{todo_id}", response_model=Envelope[TodoRead], summary="Update todo")
async def update_todo(
        todo_id: Annotated[int, Path(...)],
        todo_update: Annotated[TodoUpdate, Body(...)],
        current_user: CurrentUser,
        repos: Repos,
) -> Envelope[TodoRead]:
    """
    Update a specific todo owned by current user. Fields left out of the
    body keep their values.
    """
    try:
        db_todo = repos.todos.update(todo_id, todo_update, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not db_todo:
        raise todo_not_found()
    return Envelope(data=TodoRead.model_validate(db_todo))


@router.delete("/{todo_id}", response_model=Envelope[DeleteResult], summary="Delete todo")
async def delete_todo(
        todo_id: Annotated[int, Path(...)],
        current_user: CurrentUser,
        repos: Repos,
) -> Envelope[DeleteResult]:
    """
    Delete a specific todo owned by current user.
    """
    try:
        db_todo = repos.todos.delete_user_todo(todo_id, current_user.id)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not db_todo:
        raise todo_not_found()
    return Envelope(data=DeleteResult(id=todo_id))
