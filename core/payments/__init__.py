from core.payments.stripe_checkout import *  # noqa: F401,F403
from core.payments.stripe_checkout import __all__  # noqa: F401
