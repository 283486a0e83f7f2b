from .routes import hashes_bp
