from .routes import settings_bp
