from dataclasses import dataclass
from typing import Optional

from com.ancill.snipper.model.users import UserRepository
from com.ancill.snipper.session.store import Session

AUTHENTICATED_USER_ID_KEY = "authenticated_user_id"


@dataclass(frozen=True)
class AuthContext:
    """
    Authentication state of the current request.

    Built once per request from the session by the authenticate stage and
    discarded with the request. The default is anonymous.
    """

    user_id: Optional[int] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


ANONYMOUS = AuthContext()


async def resolve_auth_context(session: Session, users: UserRepository) -> AuthContext:
    """
    Derive the AuthContext for a session.

    A session that names a user who no longer exists is anonymous.
    """
    user_id = session.get(AUTHENTICATED_USER_ID_KEY)
    if user_id is None:
        return ANONYMOUS
    if not await users.exists(int(user_id)):
        return ANONYMOUS
    return AuthContext(user_id=int(user_id))
