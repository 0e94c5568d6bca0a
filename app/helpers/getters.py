from app.core.config import settings


def isDebugMode() -> bool:
    return settings.MODE == "development"


def isProductionMode() -> bool:
    return settings.MODE == "production"


def isTestMode() -> bool:
    return settings.MODE == "test"
