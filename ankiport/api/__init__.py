from ankiport.api.anki import router as anki_router
from ankiport.api.health import router as health_router

__all__ = [
    "anki_router",
    "health_router",
]
