from fastapi import FastAPI
from app.api.routes import ai_schedule
from app.core.logging import setup_logging

setup_logging()

app = FastAPI(title="ShiftSmart API", version="0.1.0")

app.include_router(ai_schedule.router, prefix="/api/v1")


@app.get("/health")
def health_check():
    return {"status": "ok"}
