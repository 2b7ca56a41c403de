import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from passlib.context import CryptContext
from jose import JWTError, jwt

from isagip.shared import config

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash password using bcrypt"""
    logger.debug("Hashing password.")
    hashed = pwd_context.hash(password)
    logger.debug("Password hashed successfully.")
    return hashed


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash"""
    logger.debug("Verifying password.")
    if not hashed_password:
        return False
    result = pwd_context.verify(plain_password, hashed_password)
    logger.debug(f"Password verification result: {result}")
    return result


def create_access_token(data: dict, expires_delta: timedelta = timedelta(hours=config.JWT_EXPIRE_HOURS)) -> str:
    """Create JWT token"""
    logger.debug(f"Creating access token for subject: {data.get('sub')}")
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + expires_delta
    to_encode.update({"exp": expire})
    token = jwt.encode(to_encode, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)
    logger.debug(f"Access token created. Expires at: {expire}")
    return token


def decode_token(token: str, verify_exp: bool = True) -> Optional[dict]:
    """Decode JWT token; the signature is always checked, expiry only when asked"""
    logger.debug("Decoding JWT token.")
    try:
        decoded = jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": verify_exp},
        )
        logger.debug(f"Token decoded successfully for subject: {decoded.get('sub')}")
        return decoded
    except JWTError as e:
        logger.error(f"Failed to decode token: {e}")
        return None


def is_expired(payload: dict) -> bool:
    exp = payload.get("exp")
    if exp is None:
        return True
    return datetime.now(timezone.utc).timestamp() >= float(exp)
