from .user import User, UserRole
from .models import AdminComment, Report, StatusHistoryEntry, Upvote

__all__ = ["AdminComment", "Report", "StatusHistoryEntry", "Upvote", "User", "UserRole"]
