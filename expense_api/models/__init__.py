"""Central model registry — import all models so Alembic autodiscover works."""

from expense_api.database import Base  # noqa: F401

from expense_api.models.tenant import Tenant, TenantUser, Profile  # noqa: F401
from expense_api.models.category import Category, Subcategory, PaymentMethod  # noqa: F401
from expense_api.models.expense import Expense  # noqa: F401
from expense_api.models.fx_rate import FxRate  # noqa: F401
