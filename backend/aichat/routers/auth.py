"""
Authentication routes.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas.user import UserRegister, UserLogin, LoginResponse
from ..services.auth_service import AuthService


router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(user_data: UserRegister, db: AsyncSession = Depends(get_db)):
    """Register a new user account."""
    user = await AuthService(db).register(user_data)
    return {"message": "Registration successful", "user_id": user.id}


@router.post("/login", response_model=LoginResponse)
async def login(login_data: UserLogin, db: AsyncSession = Depends(get_db)):
    """Login and receive a bearer token."""
    token, user = await AuthService(db).authenticate(login_data)
    return {"token": token, "user": user}


@router.post("/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_db)):
    """Invalidate the bearer token of this request."""
    authorization = request.headers.get("Authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing bearer token"
        )

    await AuthService(db).logout(token.strip())
    return {"message": "Logged out"}
