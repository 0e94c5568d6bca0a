import uvicorn

from app.core.config import settings
from app.helpers.getters import isDebugMode

if __name__ == "__main__":
    uvicorn.run("app.main:app", host="0.0.0.0", port=settings.PORT, reload=isDebugMode())
