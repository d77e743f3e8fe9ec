import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.admin_messages import router as admin_messages_router
from app.api.counselor_messages import router as counselor_messages_router
from app.api.messages import router as messages_router
from app.api.notifications import router as notifications_router
from app.api.referral_user_messages import router as referral_user_messages_router
from app.api.student_messages import router as student_messages_router
from app.database import engine
from app.logging_config import setup_logging
from app.services.schema_probe import configure_admin_read_schema

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    configure_admin_read_schema(engine)
    logger.info("messaging API started")
    yield


app = FastAPI(title="Counseling Messaging API", version="0.1.0", lifespan=lifespan)

app.include_router(student_messages_router)
app.include_router(counselor_messages_router)
app.include_router(referral_user_messages_router)
app.include_router(admin_messages_router)
app.include_router(messages_router)
app.include_router(notifications_router)


@app.get("/health")
def health():
    return {"status": "ok"}
