import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy import text, inspect
from sqlalchemy.exc import IntegrityError
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .database import Base, engine, get_db, utcnow
from .deps import get_current_user
from .errors import AuthenticationError, Conflict, register_exception_handlers
from .middleware import RateLimitMiddleware, RequestLogMiddleware
from .models.user import (
    AuthResponse,
    ChangePasswordRequest,
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    User,
    UserPublic,
    UserRole,
)
from .auth_utils import (
    hash_password,
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
)
from .routes import admin, reports, upload

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Verified against on unknown emails so both login failure paths cost the same
DUMMY_PASSWORD_HASH = hash_password("locallens-dummy-password")


# -------------------------------------------------------
# FastAPI App Setup
# -------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Before app startup
    Base.metadata.create_all(bind=engine)
    logger.info("LocalLens started in %s mode", config.ENVIRONMENT)
    yield


app = FastAPI(title="LocalLens Reports Service", version="1.0.0", lifespan=lifespan)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RateLimitMiddleware)
if config.is_development():
    app.add_middleware(RequestLogMiddleware)

register_exception_handlers(app)

app.include_router(reports.router)
app.include_router(admin.router)
app.include_router(upload.router)


# -------------------------------------------------------
# Root Endpoint
# -------------------------------------------------------
@app.get("/")
def root():
    return {"message": "LocalLens Reports Service is running."}


# -------------------------------------------------------
#  Health Check Endpoints
# -------------------------------------------------------
@app.get("/health/live", tags=["Health"])
def liveness_check():
    """Liveness probe: the process is up."""
    return {"status": "alive"}


@app.get("/health/ready", tags=["Health"])
def readiness_check(db: Session = Depends(get_db)):
    """Readiness probe: verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ready"}
    except Exception as e:
        logger.error("Readiness check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Database not ready: {e}",
        )


@app.get("/api/health", tags=["Health"])
def api_health():
    return {
        "status": "OK",
        "timestamp": utcnow().isoformat(),
        "environment": config.ENVIRONMENT,
    }


# -------------------------------------------------------
# REGISTER
# -------------------------------------------------------
def _issue_tokens(user: User) -> dict:
    return {
        "token": create_access_token(user.user_id),
        "refresh_token": create_refresh_token(user.user_id),
    }


@app.post("/api/auth/register", status_code=status.HTTP_201_CREATED, response_model=AuthResponse, tags=["Auth"])
def register_user(payload: RegisterRequest, db: Session = Depends(get_db)):
    """Register a new user and log them in."""
    email = payload.email.lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise Conflict("User with this email already exists", code="USER_EXISTS")

    role = payload.role or UserRole.CITIZEN
    address = payload.address.model_dump(by_alias=True, exclude_none=True) if payload.address else None
    new_user = User(
        name=payload.name,
        email=email,
        password_hash=hash_password(payload.password),
        phone=payload.phone,
        address=address,
        role=role.value,
        last_login=utcnow(),
    )
    if role == UserRole.ADMINISTRATOR and payload.address and payload.address.city:
        new_user.admin_area = payload.address.city

    db.add(new_user)
    try:
        db.commit()
    except IntegrityError:
        # Another registration took the email after the check above
        db.rollback()
        raise Conflict("User with this email already exists", code="USER_EXISTS")
    db.refresh(new_user)
    logger.info("User %s registered as %s", new_user.user_id, new_user.role)

    return AuthResponse(
        message="User registered successfully",
        user=UserPublic.model_validate(new_user),
        **_issue_tokens(new_user),
    )


# -------------------------------------------------------
#  LOGIN
# -------------------------------------------------------
@app.post("/api/auth/login", response_model=AuthResponse, tags=["Auth"])
def login_user(payload: LoginRequest, db: Session = Depends(get_db)):
    """Authenticate user and issue access and refresh tokens."""
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if user is None:
        verify_password(payload.password, DUMMY_PASSWORD_HASH)
        raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
    if not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid email or password", code="INVALID_CREDENTIALS")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated", code="ACCOUNT_DEACTIVATED")

    user.last_login = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("User %s logged in", user.user_id)

    return AuthResponse(
        message="Login successful",
        user=UserPublic.model_validate(user),
        **_issue_tokens(user),
    )


@app.post("/api/auth/refresh", response_model=TokenResponse, tags=["Auth"])
def refresh_token(payload: RefreshRequest, db: Session = Depends(get_db)):
    """Trade a refresh token for a new access token. The refresh token itself is not rotated."""
    if not payload.refresh_token:
        raise AuthenticationError("Refresh token required", code="MISSING_REFRESH_TOKEN")
    try:
        user_id = decode_refresh_token(payload.refresh_token)
    except AuthenticationError:
        raise AuthenticationError("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

    user = db.query(User).filter(User.user_id == user_id).first()
    if user is None or not user.is_active:
        raise AuthenticationError("Invalid refresh token", code="INVALID_REFRESH_TOKEN")

    logger.info("Access token refreshed for user %s", user.user_id)
    return TokenResponse(message="Token refreshed successfully", token=create_access_token(user.user_id))


# -------------------------------------------------------
# PROFILE
# -------------------------------------------------------
@app.get("/api/auth/profile", response_model=ProfileResponse, tags=["Auth"])
def get_profile(current_user: User = Depends(get_current_user)):
    """Get the currently logged-in user's profile."""
    return ProfileResponse(
        message="Profile retrieved successfully",
        user=UserPublic.model_validate(current_user),
    )


@app.put("/api/auth/profile", response_model=ProfileResponse, tags=["Auth"])
def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.name is not None:
        current_user.name = payload.name
    if payload.phone is not None:
        current_user.phone = payload.phone
    if payload.avatar is not None:
        current_user.avatar = payload.avatar
    if payload.address is not None:
        # Merge into the stored address; a new dict so the JSON column is flagged dirty
        merged = dict(current_user.address or {})
        merged.update(payload.address.model_dump(by_alias=True, exclude_none=True))
        current_user.address = merged

    db.commit()
    db.refresh(current_user)
    return ProfileResponse(
        message="Profile updated successfully",
        user=UserPublic.model_validate(current_user),
    )


@app.post("/api/auth/change-password", response_model=MessageResponse, tags=["Auth"])
def change_password(
    payload: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        raise AuthenticationError("Current password is incorrect", code="INVALID_CURRENT_PASSWORD")

    current_user.password_hash = hash_password(payload.new_password)
    db.commit()
    logger.info("Password changed for user %s", current_user.user_id)
    return MessageResponse(message="Password changed successfully")


@app.post("/api/auth/logout", response_model=MessageResponse, tags=["Auth"])
def logout(current_user: User = Depends(get_current_user)):
    # Tokens are stateless; the client discards them
    logger.info("User %s logged out", current_user.user_id)
    return MessageResponse(message="Logout successful")


# -------------------------------------------------------
# Database Connectivity Diagnostic
# -------------------------------------------------------
@app.get("/db-check")
def db_check(db: Session = Depends(get_db)):
    """Manually verify DB connectivity and list tables."""
    try:
        inspector = inspect(db.get_bind())
        tables = inspector.get_table_names()
        return {"status": "connected", "tables": tables}
    except Exception as e:
        logger.error("DB check failed: %s", e)
        return {"status": "error", "details": str(e)}
