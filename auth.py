"""
Admin access gate: password hashing, bearer tokens, role checks and admin accounts.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional
from weakref import WeakKeyDictionary

from jose import JWTError, jwt
from passlib.context import CryptContext
from pymongo.database import Database

from database import create_document, get_documents, serialize, to_object_id
from errors import AuthError, ForbiddenError, NotFoundError, ValidationError
from schemas import Admin, Role
from settings import BCRYPT_ROUNDS, JWT_ALG, JWT_SECRET, TOKEN_EXPIRE_MIN

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
TOKEN_FAILED = "Not authorized, token invalid or expired"


def make_password_context(rounds: int = BCRYPT_ROUNDS) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


pwd_context = make_password_context()

# one dummy hash per context, so a login for an unknown email costs a single verify
_dummy_hashes: "WeakKeyDictionary[CryptContext, str]" = WeakKeyDictionary()


def dummy_hash(context: CryptContext) -> str:
    if context not in _dummy_hashes:
        _dummy_hashes[context] = context.hash("not-a-real-password")
    return _dummy_hashes[context]


def admin_view(doc: dict) -> dict:
    """Admin as returned to clients; the password hash never leaves the server."""
    view = serialize(doc)
    view.pop("password_hash", None)
    return view


class AdminGate:
    def __init__(
        self,
        db: Database,
        secret: str = JWT_SECRET,
        algorithm: str = JWT_ALG,
        expire_minutes: int = TOKEN_EXPIRE_MIN,
        password_context: Optional[CryptContext] = None,
    ):
        self.db = db
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes
        self.pwd_context = password_context or pwd_context
        self._dummy_hash = dummy_hash(self.pwd_context)

    # Passwords

    def hash_password(self, password: str) -> str:
        return self.pwd_context.hash(password)

    def verify_password(self, plain: str, hashed: str) -> bool:
        return self.pwd_context.verify(plain, hashed)

    def _burn_verify(self, plain: str) -> None:
        # unknown accounts still pay for one hash check
        self.pwd_context.verify(plain, self._dummy_hash)

    # Tokens

    def create_access_token(self, admin_id: str, expires_minutes: Optional[int] = None) -> str:
        minutes = self.expire_minutes if expires_minutes is None else expires_minutes
        expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
        return jwt.encode({"sub": admin_id, "exp": expire}, self.secret, algorithm=self.algorithm)

    def login(self, email: str, password: str) -> dict:
        """Return the admin view plus a bearer token. Every failure reads the same."""
        doc = self.db["admin"].find_one({"email": email.strip().lower()})
        if not doc:
            self._burn_verify(password)
            logger.info("Login failed for %s", email)
            raise AuthError(INVALID_CREDENTIALS)
        if not self.verify_password(password, doc.get("password_hash", "")) or not doc.get("is_active", True):
            logger.info("Login failed for %s", email)
            raise AuthError(INVALID_CREDENTIALS)
        view = admin_view(doc)
        view["token"] = self.create_access_token(str(doc["_id"]))
        return view

    def authenticate(self, token: Optional[str]) -> dict:
        if not token:
            raise AuthError("Not authorized, no token")
        try:
            payload = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError:
            raise AuthError(TOKEN_FAILED)
        admin_id = payload.get("sub")
        if not admin_id:
            raise AuthError(TOKEN_FAILED)
        try:
            oid = to_object_id(admin_id, "Admin")
        except NotFoundError:
            raise AuthError(TOKEN_FAILED)
        # re-read so deactivation applies to tokens already issued
        doc = self.db["admin"].find_one({"_id": oid})
        if not doc:
            raise AuthError(TOKEN_FAILED)
        if not doc.get("is_active", True):
            raise AuthError("Not authorized, admin account is inactive")
        return admin_view(doc)

    @staticmethod
    def authorize(admin: dict, allowed_roles: Iterable[Role]) -> dict:
        allowed = {Role(r) for r in allowed_roles}
        if Role(admin.get("role")) not in allowed:
            required = ", ".join(sorted(r.value for r in allowed))
            raise ForbiddenError(
                f"Admin role {admin.get('role')} is not authorized to access this route (requires {required})"
            )
        return admin

    # Accounts

    def register_admin(self, name: str, email: str, password: str, role: Role = Role.ADMIN) -> dict:
        if len(password) < 6:
            raise ValidationError("password: must be at least 6 characters")
        email = email.strip().lower()
        if self.db["admin"].find_one({"email": email}):
            raise ValidationError("Admin already exists")
        admin = Admin(name=name, email=email, password_hash=self.hash_password(password), role=role)
        admin_id = create_document(self.db, "admin", admin)
        logger.info("Admin registered: %s (%s)", email, admin.role)
        return self.get_admin(admin_id)

    def get_admin(self, admin_id) -> dict:
        doc = self.db["admin"].find_one({"_id": to_object_id(admin_id, "Admin")})
        if not doc:
            raise NotFoundError("Admin not found")
        return admin_view(doc)

    def list_admins(self) -> List[dict]:
        return [admin_view(d) for d in get_documents(self.db, "admin", {}, sort=[("created_at", -1)])]

    def ensure_super_admin(self, name: str, email: Optional[str], password: Optional[str]) -> Optional[dict]:
        """Create the first super-admin from configuration when none exists yet."""
        if not email or not password:
            return None
        if self.db["admin"].find_one({"role": Role.SUPER_ADMIN.value}):
            return None
        return self.register_admin(name, email, password, Role.SUPER_ADMIN)
