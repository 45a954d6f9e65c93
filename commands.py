# Quick reference commands (run from repo root). These are comments only; copy/paste as needed.

# Install the app with test dependencies
# python -m pip install -e ".[test]"

# Run the unit and route tests (no database needed)
# python -m pytest

# Include the Postgres store tests
# DATABASE_URL=postgresql://localhost/autoaudit_test python -m pytest tests/db

# Run focused test files
# python -m pytest tests/test_pricing.py tests/test_letter_generator.py
# python -m pytest tests/test_vehicle_clients.py tests/test_report_pdf.py
# python -m pytest tests/test_stripe_checkout.py tests/test_referral_service.py
# python -m pytest tests/test_security_auth.py tests/test_security_headers.py

# Start the API locally (with env vars loaded)
# python -m dotenv run -- python -m uvicorn app.api:app --reload
# or: python main.py

# Forward Stripe webhooks to the local server
# stripe listen --forward-to localhost:8000/stripe/webhook

# Inspect a customer's orders
# python -m scripts.check_user_orders someone@example.com

# Promote or demote an admin
# python -m scripts.grant_admin someone@example.com
# python -m scripts.grant_admin someone@example.com --revoke
