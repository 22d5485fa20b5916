from fastapi import FastAPI

from app.api.auth import router as auth_router
from app.api.coach import router as coach_router
from app.db.session import create_tables

app = FastAPI(title="Volume Coach")


@app.on_event("startup")
def on_startup() -> None:
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "Volume Coach API", "status": "ok"}


app.include_router(auth_router)
app.include_router(coach_router)
