# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/clinic_authz

"""
Service Layer Exceptions
"""


class UnknownPermissionError(Exception):
    """Raised when a check names a permission absent from the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown permission '{name}'.")


class StoreUnavailable(Exception):
    """Raised when the permission or relationship store cannot be read."""

    pass


class Unauthenticated(Exception):
    """Raised when an identity token is missing or fails verification."""

    pass


class ResourceNotFound(Exception):
    """Raised when a requested row does not exist."""

    def __init__(self, resource: str, resource_id: int | str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} with ID {resource_id} not found!")


class PermissionNotFound(ResourceNotFound):
    def __init__(self, permission_id: int | str):
        super().__init__("Permission", permission_id)


class RolePermissionNotFound(ResourceNotFound):
    def __init__(self, binding_id: int | str):
        super().__init__("RolePermission", binding_id)


class UserPermissionNotFound(ResourceNotFound):
    def __init__(self, binding_id: int | str):
        super().__init__("UserPermission", binding_id)


class UserNotFound(ResourceNotFound):
    def __init__(self, user_id: int | str):
        super().__init__("User", user_id)


class DuplicateResourceError(Exception):
    """Raised when a resource already exists."""

    pass


class PermissionInUseError(Exception):
    """Raised when deleting a permission that bindings still reference."""

    def __init__(self, permission_id: int, role_bindings: int, user_bindings: int):
        self.permission_id = permission_id
        super().__init__(
            f"Cannot delete Permission with ID {permission_id} because it is used in "
            f"{role_bindings} role permissions and {user_bindings} user permissions."
        )


class StaleUpdateError(Exception):
    """Raised when a user permission changed underneath a concurrent update."""

    pass


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass
