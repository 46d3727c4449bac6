"""FastAPI dependencies resolved from application state."""

from __future__ import annotations

from fastapi import Request
from sqlalchemy.engine import Engine

from finance_api.config import Settings


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> Engine:
    return request.app.state.engine
