"""
Authentication Module

Provides user ID header authentication and role-based permissions.
"""

import os
from pathlib import Path

import yaml
from fastapi import Depends, HTTPException, Header, status
from pydantic import BaseModel


class User(BaseModel):
    """Authenticated user model."""

    user_id: str
    name: str
    role: str
    permissions: list[str]


class AuthConfig:
    """Authentication configuration loaded from payroll_acl.yaml."""

    def __init__(self, config_path: Path | str | None = None):
        """Initialize auth config.

        Args:
            config_path: Path to payroll_acl.yaml
        """
        if config_path is None:
            config_path = Path(__file__).parent.parent.parent / "config" / "payroll_acl.yaml"

        self.config_path = Path(config_path)
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML."""
        if self.config_path.exists():
            with open(self.config_path) as f:
                self.config = yaml.safe_load(f)
        else:
            # Default config for development
            self.config = {
                "users": [
                    {
                        "user_id": "dev",
                        "name": "Developer",
                        "role": "admin",
                    }
                ],
                "permissions": {
                    "admin": ["*"],
                    "payroll_officer": ["view", "payroll"],
                    "viewer": ["view"],
                },
            }

    def get_user(self, user_id: str) -> User | None:
        """Get user by ID.

        Args:
            user_id: User ID from the request header

        Returns:
            User object or None if not found
        """
        for user_data in self.config.get("users", []):
            if str(user_data.get("user_id")) == str(user_id):
                role = user_data.get("role", "viewer")
                permissions = self.config.get("permissions", {}).get(role, ["view"])

                return User(
                    user_id=str(user_id),
                    name=user_data.get("name", "Unknown"),
                    role=role,
                    permissions=permissions,
                )

        return None

    def has_permission(self, user: User, permission: str) -> bool:
        """Check if user has a specific permission."""
        if "*" in user.permissions:
            return True

        return permission in user.permissions


# Global auth config instance
auth_config = AuthConfig()


async def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-ID"),
) -> User:
    """Get current authenticated user from request headers.

    Raises:
        HTTPException: If authentication fails
    """
    # Development mode: allow any request
    if os.getenv("ENVIRONMENT", "development") == "development":
        if not x_user_id:
            return User(
                user_id="dev",
                name="Developer",
                role="admin",
                permissions=["*"],
            )

    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )

    user = auth_config.get_user(x_user_id)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User not authorized",
        )

    return user


def require_permission(permission: str):
    """Dependency factory for permission checks.

    Args:
        permission: Required permission

    Returns:
        Dependency function
    """
    async def check_permission(user: User = Depends(get_current_user)) -> User:
        if not auth_config.has_permission(user, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' required",
            )
        return user

    return check_permission
