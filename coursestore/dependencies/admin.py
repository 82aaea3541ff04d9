from fastapi import Depends
from coursestore.exceptions import AuthorizationError
from coursestore.models.user import User
from coursestore.utils.token import get_current_user

def require_admin(current_user: User = Depends(get_current_user)):
    if current_user.role != "admin":
        raise AuthorizationError("Admin access required")
    return current_user
