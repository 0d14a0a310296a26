import logging

from fastapi import FastAPI

from app.api.owner import router as owner_router
from app.api.reservations import router as reservations_router
from app.core.config import settings

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("group_id", "customer_id", "date", "hour", "status", "reason", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title=f"{settings.BUSINESS_NAME} Booking", version="1.0.0")

app.include_router(reservations_router, tags=["reservations"])
app.include_router(owner_router, prefix="/owner", tags=["owner"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
