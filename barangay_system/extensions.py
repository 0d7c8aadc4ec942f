"""Flask extensions.

Extension instances live in their own module so that models, blueprints and
the record store share one SQLAlchemy object without circular imports:

    from .extensions import db, login_manager, mail, csrf
"""

from flask_login import LoginManager
from flask_mail import Mail
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect


db = SQLAlchemy()
login_manager = LoginManager()
mail = Mail()
csrf = CSRFProtect()
