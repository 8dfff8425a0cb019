#!/usr/bin/env python3
"""
Management commands for Team Board.

Usage:
    python manage.py init_db
    python manage.py check_db
    python manage.py reset_db
    python manage.py create_user <username> <email> <password> [--admin]
"""

import sys
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, Session, select, or_
from database import engine
from settings import logger
from helpers.auth import hash_password
from models.auth import User, UserRole
# Import all models to ensure tables are created
from models.auth import Token, TokenUser  # noqa: F401
from models.projects import Project, ProjectMember  # noqa: F401
from models.boards import Task  # noqa: F401
from models.messages import Message  # noqa: F401


def init_db():
    """Initialize database tables."""
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created successfully")


def check_db():
    """Check database connection and tables."""
    try:
        tables = inspect(engine).get_table_names()
    except SQLAlchemyError as e:
        logger.error("Database connection failed", extra={"error": str(e)})
        sys.exit(1)

    missing = sorted(set(SQLModel.metadata.tables) - set(tables))
    logger.info("Database connected", extra={"tables": tables, "missing_tables": missing})
    if missing:
        sys.exit(1)


def reset_db():
    """Drop and recreate all database tables."""
    logger.warning("Dropping all database tables...")
    SQLModel.metadata.drop_all(engine)
    logger.info("Creating database tables...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database reset successfully")


def create_user(username: str, email: str, password: str, admin: bool = False) -> User:
    """Create an active user, optionally a system administrator."""
    with Session(engine) as session:
        existing = session.exec(
            select(User).where(or_(User.username == username, User.email == email.lower()))
        ).first()
        if existing:
            logger.error("User already exists", extra={"username": username, "email": email})
            sys.exit(1)

        user = User(
            username=username,
            email=email.lower(),
            hashed_password=hash_password(password),
            role=UserRole.ADMIN if admin else UserRole.MEMBER,
            is_active=True
        )
        session.add(user)
        session.commit()
        session.refresh(user)

        logger.info("User created", extra={"user_id": user.id, "username": username, "role": user.role.value})
        return user


def main():
    if len(sys.argv) < 2:
        print("Usage: python manage.py <command> [args]")
        print("Commands:")
        print("  init_db                                        - Initialize database tables")
        print("  check_db                                       - Check database connection")
        print("  reset_db                                       - Drop and recreate all tables")
        print("  create_user <username> <email> <pass> [--admin] - Create a user")
        sys.exit(1)

    command = sys.argv[1]

    if command == "init_db":
        init_db()
    elif command == "check_db":
        check_db()
    elif command == "reset_db":
        reset_db()
    elif command == "create_user":
        args = [arg for arg in sys.argv[2:] if arg != "--admin"]
        if len(args) != 3:
            print("Usage: python manage.py create_user <username> <email> <password> [--admin]")
            sys.exit(1)
        create_user(*args, admin="--admin" in sys.argv[2:])
    else:
        print(f"Unknown command: {command}")
        print("Run 'python manage.py' to see available commands")
        sys.exit(1)


if __name__ == "__main__":
    main()
