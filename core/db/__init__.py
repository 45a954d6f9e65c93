"""
Postgres storage, grouped by area. Import from here (or core.database) rather than the submodules.
"""
from core.db.base import get_conn
from core.db.users import *  # noqa: F401,F403
from core.db.users import __all__ as _users_all
from core.db.referrals import *  # noqa: F401,F403
from core.db.referrals import __all__ as _referrals_all
from core.db.disputes import *  # noqa: F401,F403
from core.db.disputes import __all__ as _disputes_all
from core.db.vehicles import *  # noqa: F401,F403
from core.db.vehicles import __all__ as _vehicles_all
from core.db.schema import ensure_admin_from_env, init_db

__all__ = (
    ["get_conn", "init_db", "ensure_admin_from_env"]
    + list(_users_all)
    + list(_referrals_all)
    + list(_disputes_all)
    + list(_vehicles_all)
)
