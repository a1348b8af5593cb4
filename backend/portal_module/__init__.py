from sqlalchemy.orm import Session

from .database import Base, engine
from .functions import functions_router
from .routes import router
from .services import seed_default_users


def init_portal_module() -> None:
    Base.metadata.create_all(bind=engine)
    db = Session(bind=engine)
    try:
        seed_default_users(db)
    finally:
        db.close()


__all__ = ["router", "functions_router", "init_portal_module"]
