import azure.functions as func

from shared.config import get_settings
from shared.db import init_db

# Fail fast on missing or malformed settings before any route is registered.
get_settings()

# Initialize the database (creates tables if they don't exist)
init_db()

app = func.FunctionApp()

# Import endpoint modules so their routes register with the shared app.
import health_endpoints  # noqa
import auth_endpoints  # noqa
import companies_endpoints  # noqa
import crm_endpoints  # noqa
import files_endpoints  # noqa
import chat_endpoints  # noqa
import accounting_endpoints  # noqa
import time_endpoints  # noqa
import dashboard_endpoints  # noqa
