from .auth import auth_bp
from .digilocker import digilocker_bp
from .emergency import emergency_bp
from .records import records_bp
from .sharing import sharing_bp

BLUEPRINTS = [auth_bp, digilocker_bp, records_bp, sharing_bp, emergency_bp]


def register_blueprints(app):
    for blueprint in BLUEPRINTS:
        app.register_blueprint(blueprint)
