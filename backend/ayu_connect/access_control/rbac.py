from enum import Enum


class Permission(Enum):
    # Record Permissions
    READ_RECORD = "read_record"
    UPDATE_RECORD = "update_record"
    DELETE_RECORD = "delete_record"
    SHARE_RECORD = "share_record"

    # File Permissions
    UPLOAD_FILE = "upload_file"
    DOWNLOAD_FILE = "download_file"
    DELETE_FILE = "delete_file"


# The owner of a record can do everything
OWNER_PERMISSIONS = list(Permission)

# What a grantee may do, keyed by SharedGrant.access_type
ACCESS_TYPE_PERMISSIONS = {
    "view": [
        Permission.READ_RECORD,
    ],
    "download": [
        Permission.READ_RECORD,
        Permission.DOWNLOAD_FILE,
    ],
}

# Records flagged for emergency access are readable by any signed-in caller
EMERGENCY_PERMISSIONS = [
    Permission.READ_RECORD,
    Permission.DOWNLOAD_FILE,
]


def has_permission(access_type, permission):
    """Check if a grant access type carries a specific permission"""
    return permission in ACCESS_TYPE_PERMISSIONS.get(access_type, [])


def get_access_permissions(access_type):
    """Get all permissions for a grant access type"""
    return ACCESS_TYPE_PERMISSIONS.get(access_type, [])
