"""User directory module."""

from .directory import IUserDirectory, UserDirectory, user_to_dict

__all__ = ["IUserDirectory", "UserDirectory", "user_to_dict"]
