from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from casebook.models.users import User


def create_user(db: Session, full_name: str, email: str) -> User:
    user = User(full_name=full_name, email=email.strip().lower())
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
        return user
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("User email already exists.") from exc


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.strip().lower()).first()
