from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm

from ..database import get_repositories
from ..logger import logger
from ..models import User
from ..repositories.base import Repositories
from ..schemas import AuthResult, Envelope, LoginRequest, UserCreate, UserRead, UserUpdate
from ..security import Token, create_user_token, get_current_active_user

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _authenticate(repos: Repositories, email: str, password: str) -> User:
    user = repos.users.get_by_email(email)
    # Deactivated accounts cannot log in
    if not user or not user.is_active or not user.verify_password(password):
        logger.warning(f"Failed login attempt for user: {email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info(f"Successful login for user: {email}")
    return repos.users.touch_login(user.id) or user


@router.post(
    "/register",
    response_model=Envelope[AuthResult],
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
        user: Annotated[UserCreate, Body(...)],
        repos: Annotated[Repositories, Depends(get_repositories)],
) -> Envelope[AuthResult]:
    """
    Create an account and return a bearer token for it.
    """
    try:
        db_user = repos.users.create(user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.info(f"Registered user {db_user.id} ({db_user.email})")
    return Envelope(data=AuthResult(
        token=create_user_token(db_user),
        user=UserRead.model_validate(db_user),
    ))


@router.post("/login", response_model=Envelope[AuthResult], summary="Log in with email and password")
async def login(
        credentials: Annotated[LoginRequest, Body(...)],
        repos: Annotated[Repositories, Depends(get_repositories)],
) -> Envelope[AuthResult]:
    """
    Exchange credentials for a bearer token.
    """
    logger.info(f"Login attempt for user: {credentials.email}")
    user = _authenticate(repos, credentials.email, credentials.password)
    return Envelope(data=AuthResult(
        token=create_user_token(user),
        user=UserRead.model_validate(user),
    ))


@router.post("/token", response_model=Token, summary="Create access token")
async def login_for_access_token(
        form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
        repos: Annotated[Repositories, Depends(get_repositories)],
) -> Token:
    """
    OAuth2 password flow; the username field carries the email.
    """
    logger.info(f"Login attempt for user: {form_data.username}")
    user = _authenticate(repos, form_data.username, form_data.password)
    return Token(access_token=create_user_token(user), token_type="bearer")


@router.get("/me", response_model=Envelope[UserRead], summary="Get current user")
async def read_users_me(
        current_user: Annotated[User, Depends(get_current_active_user)],
) -> Envelope[UserRead]:
    return Envelope(data=UserRead.model_validate(current_user))


@router.put("/me", response_model=Envelope[UserRead], summary="Update current user")
async def update_user_me(
        user_update: Annotated[UserUpdate, Body(...)],
        current_user: Annotated[User, Depends(get_current_active_user)],
        repos: Annotated[Repositories, Depends(get_repositories)],
) -> Envelope[UserRead]:
    """
    Change the current user's name, email or password.
    """
    try:
        updated_user = repos.users.update(current_user.id, user_update)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if not updated_user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return Envelope(data=UserRead.model_validate(updated_user))
