from .errors import Forbidden
from .schemas import Role, User


def require_role(user: User | None, allowed_roles: list[Role]) -> User:
    if user is None:
        raise Forbidden("Login required")

    allowed = {Role(r) for r in allowed_roles}
    if user.role in allowed:
        return user
    # legacy accounts only carry the flag
    if Role.SERVICE_PROVIDER in allowed and user.is_service_provider:
        return user

    raise Forbidden("Access forbidden for this role")


def is_service_provider(user: User | None) -> bool:
    return user is not None and (user.role == Role.SERVICE_PROVIDER or user.is_service_provider)
