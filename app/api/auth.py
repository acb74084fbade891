"""Auth endpoints for the SPA client.

POST /auth/register   public sign-up, always a student account
POST /auth/login      username + password, JSON body
POST /auth/token      same check, OAuth2 password form (Swagger "Authorize")
GET  /auth/me         caller's profile with their classes

register and login return { accessToken, user } so the client can keep
the token in memory and route straight to the right dashboard.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, Field

from app.api.dependencies import CurrentUser, ReposDep
from app.api.schemas import UserOut, UserProfileOut, class_out, user_out
from app.models.user import User
from app.repos.registry import Repos
from app.services import auth_service, token_service, users_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# --- Request / Response schemas -------------------------------------------


class LoginIn(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterIn(BaseModel):
    username: str = Field(min_length=1, max_length=150)
    password: str = Field(min_length=6)
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class AuthResponse(BaseModel):
    accessToken: str
    user: UserOut


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


def _issue(user: User) -> str:
    return token_service.create_access_token(sub=str(user.id), role=user.role)


async def _authenticate(repos: Repos, username: str, password: str) -> User:
    user = await auth_service.authenticate_user(repos.users, username, password)
    if user is None:
        logger.warning("Login failed username=%s", username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info("Login succeeded user_id=%s role=%s", user.id, user.role)
    return user


# --- POST /auth/register --------------------------------------------------


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(payload: RegisterIn, repos: ReposDep) -> AuthResponse:
    user = await users_service.register_student(
        repos,
        username=payload.username,
        password=payload.password,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return AuthResponse(accessToken=_issue(user), user=user_out(user))


# --- POST /auth/login -----------------------------------------------------


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginIn, repos: ReposDep) -> AuthResponse:
    user = await _authenticate(repos, payload.username, payload.password)
    return AuthResponse(accessToken=_issue(user), user=user_out(user))


@router.post("/token", response_model=Token)
async def issue_token(
    form: Annotated[OAuth2PasswordRequestForm, Depends()],
    repos: ReposDep,
) -> Token:
    user = await _authenticate(repos, form.username, form.password)
    return Token(access_token=_issue(user))


# --- GET /auth/me ---------------------------------------------------------


@router.get("/me", response_model=UserProfileOut)
async def me(principal: CurrentUser, repos: ReposDep) -> UserProfileOut:
    """Load the authenticated user's own profile."""
    profile = await users_service.get_profile(repos, principal.user_id)
    return UserProfileOut(
        **user_out(profile.user).model_dump(),
        classes=[class_out(c) for c in profile.classes],
    )
