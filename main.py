import uvicorn

from medialib.config import get_settings

if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("medialib.main:app", host="0.0.0.0", port=8000, log_level=settings.LOG_LEVEL.lower())
