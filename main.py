import uvicorn
from dotenv import load_dotenv

from ridedesk.app_factory import create_app
from ridedesk.config.settings import settings

load_dotenv(override=True)

app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL,
        reload=settings.DEBUG,
    )
