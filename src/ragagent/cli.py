import uvicorn
from ragagent.core.settings import settings

def main():
    uvicorn.run(
        "ragagent.app:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_HOT_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
