import logging

from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from fitpro.core.auth_dependency import get_db
from fitpro.core.config import Settings, get_settings
from fitpro.core.security import MAX_PASSWORD_BYTES, hash_password, verify_password, create_access_token
from fitpro.db.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

MIN_PASSWORD_LENGTH = 6


# ✅ MEMBER SIGNUP
@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(
    full_name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db)
):
    email = email.strip().lower()

    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=422, detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise HTTPException(status_code=422, detail="Password must be 72 characters or fewer")

    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(status_code=409, detail="Email already registered")

    # Subscriber fields start out null
    user = User(
        full_name=full_name,
        email=email,
        password_hash=hash_password(password),
    )

    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"User created: user_id={user.id}")

    return {
        "message": "User created successfully",
        "user_id": user.id
    }


# ✅ OAUTH2 LOGIN (Swagger sends "username", treated as email)
@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = db.query(User).filter(User.email == form_data.username.strip().lower()).first()

    if not user or not verify_password(form_data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = create_access_token({"sub": user.email, "role": user.role}, settings)

    return {
        "access_token": token,
        "token_type": "bearer"
    }
