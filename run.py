import uvicorn
from gym_lifecycle.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "gym_lifecycle.main:app",
        host="localhost",
        port=settings.SERVER_PORT,
        reload=True,
        log_level="info",
    )
