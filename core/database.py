"""
Flat import surface for the web layer: every storage helper lives under core.db.
"""
from core.db import *  # noqa: F401,F403
from core.db import __all__  # noqa: F401
