import pytest

from app import security
from app.routes import vehicles


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    security.reset_rate_limits()
    yield
    security.reset_rate_limits()


@pytest.fixture(autouse=True)
def _fresh_providers(monkeypatch):
    # Shared provider clients are built on first use; each test starts without any.
    monkeypatch.setattr(vehicles, "_providers", {})


@pytest.fixture(autouse=True)
def _no_stray_credentials(monkeypatch):
    # Provider clients and Stripe read these at call time; tests opt in explicitly.
    for name in (
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "DVLA_VEHICLE_API_KEY",
        "DVLA_DRIVER_API_KEY",
        "VEHICLE_DATA_API_KEY",
        "PUBLIC_BASE_URL",
        "EMAIL_USER",
        "EMAIL_PASSWORD",
        "DVLA_MOT_CLIENT_ID",
        "DVLA_MOT_CLIENT_SECRET",
        "DVLA_MOT_API_KEY",
        "DVLA_MOT_SCOPE_URL",
        "DVLA_MOT_TOKEN_URL",
        "DVLA_MOT_HISTORY_API_BASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
