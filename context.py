from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import Request
from pymongo.database import Database

from config import Settings
from database import connect
from errors import Internal
from storage import MediaStorage


@dataclass
class AppContext:
    """Everything a request handler needs, built once at startup."""

    settings: Settings
    db: Database
    media: Any  # MediaStorage or anything with upload/delete/release
    http: httpx.Client
    client: Optional[Any] = None

    def close(self) -> None:
        self.http.close()
        if self.client is not None:
            self.client.close()


def build_context(settings: Settings) -> AppContext:
    client = connect(settings)
    return AppContext(
        settings=settings,
        db=client[settings.database_name],
        media=MediaStorage(settings),
        http=httpx.Client(timeout=10.0, headers={"User-Agent": "portfolio-api"}),
        client=client,
    )


def get_context(request: Request) -> AppContext:
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise Internal("Application context is not initialised")
    return context
