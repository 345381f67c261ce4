from fastapi import Request

from ...core.config import Settings
from ...core.interfaces import FeedbackOracle, SessionRecordStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_oracle(request: Request) -> FeedbackOracle:
    return request.app.state.oracle


def get_store(request: Request) -> SessionRecordStore:
    return request.app.state.store
