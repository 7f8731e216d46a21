# This file makes the access_control directory a Python package
from .rbac import Permission, has_permission, get_access_permissions
from .authorization import check_record_access, ensure_record_access, find_active_grant
from .authentication import BearerCredential, SessionCredential, resolve_credential
from .decorators import login_required
