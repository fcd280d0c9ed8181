"""User API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.models.user import User, UserRole
from reservations.schemas.user import UserCreate, UserUpdate, UserOut
from reservations.services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)
router = APIRouter()


def _check_role(role):
    if role is not None and role not in {r.value for r in UserRole}:
        raise ValidationError(f"Unknown role: {role}", field="role")


def _check_email_free(db: Session, email: str, user_id=None):
    existing = db.query(User).filter(User.email == email).first()
    if existing and existing.user_id != user_id:
        raise ValidationError(f"Email already registered: {email}", field="email")


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    """Register a user with a workflow role."""
    _check_role(payload.role)
    _check_email_free(db, payload.email)
    user = User(**payload.model_dump())
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s (%s, %s)", user.user_id, user.email, user.role)
    return user


@router.get("/", response_model=list[UserOut])
def list_users(db: Session = Depends(get_db)):
    return db.query(User).order_by(User.email).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: str, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


@router.patch("/{user_id}", response_model=UserOut)
def update_user(user_id: str, payload: UserUpdate, db: Session = Depends(get_db)):
    """Update display name, email or role (partial update)."""
    user = db.query(User).filter(User.user_id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    updates = payload.model_dump(exclude_unset=True)
    _check_role(updates.get("role"))
    if updates.get("email"):
        _check_email_free(db, updates["email"], user_id)
    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info("Updated user %s", user_id)
    return user
