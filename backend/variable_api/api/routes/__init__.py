"""API route handlers for Variable."""

from variable_api.api.routes import admin as admin
from variable_api.api.routes import onboarding as onboarding
