# salon_api/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

def normalize_db_url(url: str) -> str:
    if not url:
        return url
    # Render / Heroku style → SQLAlchemy psycopg3 driver
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url

def engine_options_for(url: str) -> dict:
    """Pool settings only make sense for a real server; sqlite keeps its defaults."""
    if not url or url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 270,
        "pool_size": 5,
        "max_overflow": 2,
        "pool_timeout": 30,
    }

def init_db(app):
    url = normalize_db_url(app.config.get("SQLALCHEMY_DATABASE_URI", "") or "")
    app.config["SQLALCHEMY_DATABASE_URI"] = url
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options_for(url))
    db.init_app(app)
