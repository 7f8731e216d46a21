import logging
from functools import wraps

from flask import g

from ayu_connect.context import get_services
from ayu_connect.errors import AuthenticationError
from ayu_connect.models import User
from .authentication import resolve_credential

logger = logging.getLogger(__name__)


def login_required(f):
    """Decorator to require a bearer token or an authenticated DigiLocker session"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        services = get_services()
        with services.database.session_scope() as db:
            credential = resolve_credential(db, services.clock.now())
            user = db.get(User, credential.user_id)
            if not user:
                logger.warning("[AUTH] Credential for unknown user %s", credential.user_id)
                raise AuthenticationError("User not found")

        g.credential = credential
        g.user_id = credential.user_id
        return f(*args, **kwargs)
    return decorated_function
