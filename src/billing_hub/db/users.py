from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_hub.db.model import User, UserRole


class UserStore:
    """Read access to caller identities owned by the auth layer."""

    def get(self, session: Session, user_id) -> Optional[User]:
        return session.get(User, user_id)

    def get_by_email(self, session: Session, email: str) -> Optional[User]:
        return session.scalars(select(User).where(User.email == email)).first()

    def create(self, session: Session, name: str, email: str, role: UserRole = UserRole.CASHIER) -> User:
        user = User(name=name, email=email, role=UserRole(role))
        session.add(user)
        session.flush()
        return user
