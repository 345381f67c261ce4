from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ...core.config import Settings, get_settings
from ...core.interfaces import FeedbackOracle, SessionRecordStore
from ...core.logging import setup_logging
from ...managers.interview import OpenAIInterviewManager
from ...managers.records import JsonFileRecordStore

def create_app(settings: Optional[Settings] = None,
               oracle: Optional[FeedbackOracle] = None,
               store: Optional[SessionRecordStore] = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)
    
    app = FastAPI(
        title=settings.APP_NAME,
        debug=settings.DEBUG,
        version="0.1.0"
    )
    
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with actual origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Session collaborators shared by every request
    app.state.settings = settings
    app.state.oracle = oracle or OpenAIInterviewManager(settings)
    app.state.store = store or JsonFileRecordStore(settings.RECORDS_PATH)
    
    # Include routers
    from .routers import health, interview, records
    app.include_router(health.router, prefix=settings.API_PREFIX)
    app.include_router(records.router, prefix=settings.API_PREFIX)
    app.add_api_websocket_route(settings.WEBSOCKET_PATH, interview.interview_socket)
    
    return app
