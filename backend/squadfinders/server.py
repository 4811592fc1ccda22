#!/usr/bin/env python3
import uvicorn

from squadfinders.config.settings import settings

if __name__ == "__main__":
    uvicorn.run(
        "squadfinders.api.api:app",   # Usar string de importación en lugar del objeto
        host=settings.API_HOST,
        port=settings.API_PORT,
        workers=1,           # Un solo proceso: el scheduler vive dentro del event loop de la API
        log_level=settings.LOG_LEVEL.lower(),
        access_log=False
    )
