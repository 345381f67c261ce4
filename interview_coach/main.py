from .interface.api.main import create_app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    from .core.config import get_settings

    settings = get_settings()
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
