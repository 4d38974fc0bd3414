from dataclasses import dataclass
import logging
from typing import Optional

from fastapi import Header, HTTPException, status


logger = logging.getLogger("auth.deps")


@dataclass
class AuthContext:
    email: str


def get_current_user(
    x_operator_email: Optional[str] = Header(default=None, alias="X-Operator-Email"),
) -> AuthContext:
    # Sign-in happens upstream; the gateway forwards the verified operator email.
    email = (x_operator_email or "").strip().lower()
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing operator identity")
    if "@" not in email:
        logger.warning("Rejected malformed operator identity", extra={"identity": email})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid operator identity")
    return AuthContext(email=email)
