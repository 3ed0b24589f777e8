"""
Shared Flask extension instances, bound to the app in create_app().
"""
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

# Tenants, catalog, appointments, payments and the loyalty ledger
db = SQLAlchemy()
migrate = Migrate()
