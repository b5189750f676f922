from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for models served through qcore resources."""
    pass
