from core.referrals.service import *  # noqa: F401,F403
from core.referrals.service import __all__  # noqa: F401
