import os

# Settings are read once at import time; pin them before expense_api loads.
os.environ.setdefault("AUTH_JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FX_PROVIDER_API_KEY", "test-key")

import pytest

from expense_api.services.auth_service import create_access_token
from fakes import TENANT_ID, USER_ID


@pytest.fixture
def access_token():
    return create_access_token(
        user_id=USER_ID,
        email="ana@example.com",
        display_name="Ana",
    )


@pytest.fixture
def auth_headers(access_token):
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def tenant_user():
    return {
        "user_id": USER_ID,
        "email": "ana@example.com",
        "display_name": "Ana",
        "tenant_id": TENANT_ID,
    }
