"""Shared Flask extension singletons to avoid circular imports."""
from flask_login import LoginManager
from flask_wtf import CSRFProtect

from utils.api_client import ApiClient

# Initialize extensions without app; app_factory will bind them.
csrf = CSRFProtect()
login_manager = LoginManager()
api = ApiClient()
