"""
Authentication API endpoints.

This module provides REST API endpoints for:
- User registration
- Login (bearer access token)
- Current principal lookup
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

import schemas
from database import get_db
from models import User, UserRole
from auth.security import hash_password, verify_password, token_for_user
from auth.dependencies import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _token_response(user: User) -> schemas.TokenData:
    return schemas.TokenData(
        access_token=token_for_user(user),
        user=schemas.User.model_validate(user),
    )


@router.post(
    "/register",
    response_model=schemas.Envelope[schemas.TokenData],
    status_code=status.HTTP_201_CREATED,
)
async def register(request: schemas.RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account with the user role.

    Raises:
        HTTPException: 400 if email already registered
    """
    logger.info(f"Registration attempt for email: {request.email}")

    email = request.email.lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        logger.info(f"Registration failed: email already exists: {email}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists with this email",
        )

    new_user = User(
        name=request.name,
        email=email,
        password_hash=hash_password(request.password),
        role=UserRole.user.value,
        is_active=True,
    )
    db.add(new_user)
    db.commit()
    db.refresh(new_user)

    logger.info(f"User registered successfully: {new_user.email} (ID: {new_user.id})")
    return schemas.Envelope(message="User registered successfully", data=_token_response(new_user))


@router.post("/login", response_model=schemas.Envelope[schemas.TokenData])
async def login(request: schemas.LoginRequest, db: Session = Depends(get_db)):
    """
    Login with email and password.

    Raises:
        HTTPException: 401 if credentials invalid, 403 if the account is inactive
    """
    email = request.email.lower()
    logger.info(f"Login attempt for email: {email}")

    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(request.password, user.password_hash):
        logger.info(f"Login failed: invalid credentials for {email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if not user.is_active:
        logger.info(f"Login failed: inactive user: {email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )

    logger.info(f"User logged in successfully: {user.email} (ID: {user.id})")
    return schemas.Envelope(message="Login successful", data=_token_response(user))


@router.get("/me", response_model=schemas.Envelope[schemas.UserData])
async def get_me(current_user: User = Depends(get_current_user)):
    """Get information about the currently authenticated user."""
    logger.debug(f"Getting user info for: {current_user.email}")
    return schemas.Envelope(data=schemas.UserData(user=schemas.User.model_validate(current_user)))
