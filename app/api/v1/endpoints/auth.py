from fastapi import APIRouter, HTTPException, status

from app.api.deps import DB
from app.schemas.auth import LoginRequest, TokenResponse
from app.services.audit_service import AuditService
from app.services.auth_service import AuthService

router = APIRouter(tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
async def login(
    data: LoginRequest,
    db: DB,
):
    """
    Authenticate user and return an access token.
    """
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(data.email, data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token, expires_in = auth_service.create_token(user)

    await AuditService(db).log(
        action="LOGIN",
        entity_type="USER",
        entity_id=user.id,
        user_id=user.id,
        organization_id=user.organization_id,
        description=f"User {user.email} logged in",
    )

    return TokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=expires_in,
    )
