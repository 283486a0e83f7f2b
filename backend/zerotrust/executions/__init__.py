from .routes import executions_bp
