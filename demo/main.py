"""
Runnable demo: users (soft delete, auth) and posts (foreign key to users).

    python -m demo.main
"""
from typing import Optional

from fastapi import FastAPI

from qcore.app import create_app
from qcore.core.config import Settings, get_settings
from qcore.core.events import EventBus
from qcore.core.server import ApiServer
from qcore.db.base import Base
from qcore.db.database import DatabaseService
from qcore.factory import crud_router

from demo.models import Post
from demo.schemas import PostSchema, post_auto_fields
from demo.users import log_signup, users_router


def create_demo_app(
    settings: Optional[Settings] = None,
    database: Optional[DatabaseService] = None,
    configure_logging: bool = True,
) -> FastAPI:
    settings = settings or get_settings()
    database = database or DatabaseService(settings.DATABASE_URL)

    events = EventBus()
    events.on("users.created", log_signup)

    posts = crud_router(
        Post,
        PostSchema,
        post_auto_fields,
        database,
        base_path="/posts",
        events=events,
    )
    return create_app(
        settings,
        database,
        routers=[users_router(database, settings, events), posts],
        events=events,
        title="qcore demo",
        configure_logging=configure_logging,
    )


def main() -> None:
    settings = get_settings()
    database = DatabaseService(settings.DATABASE_URL)
    app = create_demo_app(settings, database)
    database.create_all(Base.metadata)
    ApiServer(app, database, settings).start(settings.PORT)


if __name__ == "__main__":
    main()
