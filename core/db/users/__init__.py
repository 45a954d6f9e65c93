"""
User-related storage helpers, split by responsibility.
"""
from core.db.users.auth import hash_password, verify_password
from core.db.users.user_store import (
    USER_SORT_FIELDS,
    count_users,
    create_user,
    delete_user_data,
    get_deleted_users,
    get_user_by_email,
    get_user_by_id,
    list_users,
    set_comprehensive_report_access,
    set_user_role,
    update_user_password,
    update_user_profile,
)
from core.db.users.sessions import (
    SESSION_TIMEOUT_MINUTES,
    create_session,
    delete_session,
    delete_user_sessions,
    get_session,
    touch_session,
)
from core.db.users.tokens import (
    RESET_TOKEN_MINUTES,
    VERIFY_TOKEN_HOURS,
    create_email_verification_token,
    create_password_reset_token,
    get_email_verification_token,
    get_password_reset_token,
    mark_email_verification_token_used,
    mark_reset_token_used,
    mark_user_email_verified,
)

__all__ = [
    "hash_password",
    "verify_password",
    "USER_SORT_FIELDS",
    "count_users",
    "create_user",
    "delete_user_data",
    "get_deleted_users",
    "get_user_by_email",
    "get_user_by_id",
    "list_users",
    "set_comprehensive_report_access",
    "set_user_role",
    "update_user_password",
    "update_user_profile",
    "SESSION_TIMEOUT_MINUTES",
    "create_session",
    "delete_session",
    "delete_user_sessions",
    "get_session",
    "touch_session",
    "RESET_TOKEN_MINUTES",
    "VERIFY_TOKEN_HOURS",
    "create_email_verification_token",
    "create_password_reset_token",
    "get_email_verification_token",
    "get_password_reset_token",
    "mark_email_verification_token_used",
    "mark_reset_token_used",
    "mark_user_email_verified",
]
