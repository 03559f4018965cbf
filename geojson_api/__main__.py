# geojson_api/__main__.py

import uvicorn
from dotenv import load_dotenv

from .config import Settings
from .main import create_app


def main():
    # Load environment variables from .env file
    load_dotenv()
    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
