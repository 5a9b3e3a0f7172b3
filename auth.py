from datetime import datetime, timedelta, timezone
import logging
import uuid

from fastapi import APIRouter, Depends, Form, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import Config
from database import get_db
from models import Profile, RevokedToken, User
from schemas import ProfileOut, SessionOut, Token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

SECRET_KEY = Config.SECRET_KEY
ALGORITHM = Config.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = Config.ACCESS_TOKEN_EXPIRE_MINUTES
MIN_PASSWORD_LENGTH = 6

SIGNED_UP = "SIGNED_UP"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


class SessionManager:
    """Fans session changes out to registered listeners.

    Listeners are called as ``listener(event, user)``. ``subscribe`` returns
    the callable that removes the listener again.
    """

    def __init__(self):
        self._listeners = []

    def subscribe(self, listener):
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def notify(self, event: str, user: User):
        for listener in list(self._listeners):
            try:
                listener(event, user)
            except Exception:
                logger.exception("Session listener failed on %s for user %s", event, user.id)


session_manager = SessionManager()

# -- HELPER FUNCTIONS --

def verify_password(plain_password: str, hashed_password: str):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str):
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def _credentials_exception():
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _credentials_exception()
    if payload.get("sub") is None or payload.get("jti") is None:
        raise _credentials_exception()
    return payload


def _resolve_user(token: str, db: Session) -> User:
    payload = _decode(token)
    if db.get(RevokedToken, payload["jti"]) is not None:
        raise _credentials_exception()

    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if user is None:
        raise _credentials_exception()
    return user


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    return _resolve_user(token, db)

# -- ROUTES --

@router.post("/register", status_code=201)
def register(
    form_data: OAuth2PasswordRequestForm = Depends(),
    full_name: str = Form(""),
    db: Session = Depends(get_db),
):
    """
    Registers a new user and creates the matching profile.
    Uses OAuth2PasswordRequestForm so expects username (the email), password.
    """
    email = form_data.username.strip().lower()
    existing_user = db.query(User).filter(User.email == email).first()
    if existing_user:
        raise HTTPException(status_code=400, detail="User already exists")
    if len(form_data.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password should be at least {MIN_PASSWORD_LENGTH} characters",
        )

    new_user = User(email=email, hashed_password=get_password_hash(form_data.password))
    db.add(new_user)
    try:
        db.flush()
        db.add(Profile(id=new_user.id, email=email, full_name=full_name or None))
        db.commit()
    except IntegrityError:
        # lost a race with a concurrent sign-up for the same email
        db.rollback()
        raise HTTPException(status_code=400, detail="User already exists")
    db.refresh(new_user)

    session_manager.notify(SIGNED_UP, new_user)
    return {"msg": "User registered successfully", "email": new_user.email}

@router.post("/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """
    Login with username and password, returns JWT
    """
    email = form_data.username.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(status_code=400, detail="Invalid credentials")

    access_token = create_access_token(data={"sub": str(user.id)})
    session_manager.notify(SIGNED_IN, user)
    return {"access_token": access_token, "token_type": "bearer"}

@router.post("/logout")
def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
    user = _resolve_user(token, db)
    db.add(RevokedToken(jti=_decode(token)["jti"]))
    db.commit()

    session_manager.notify(SIGNED_OUT, user)
    return {"msg": "Signed out"}

@router.get("/session", response_model=SessionOut)
def current_session(token: str | None = Depends(optional_oauth2_scheme), db: Session = Depends(get_db)):
    if not token:
        return SessionOut(signed_in=False)
    try:
        user = _resolve_user(token, db)
    except HTTPException:
        return SessionOut(signed_in=False)
    return SessionOut(signed_in=True, user=ProfileOut.model_validate(user.profile))
