from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from visitdoc.infrastructure.db.models_sqlalchemy import User


class UserRepository:
    def get_by_login(self, session: Session, login: str) -> User | None:
        stmt = select(User).where(User.login == login)
        return session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, session: Session, user_id: int) -> User | None:
        stmt = select(User).where(User.id == user_id)
        return session.execute(stmt).scalar_one_or_none()

    def create(self, session: Session, login: str, role: str, full_name: str | None = None) -> User:
        user = User(login=login, role=role, full_name=full_name, is_active=True)
        session.add(user)
        session.flush()  # populate id
        return user
