import os
import random

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowdesk.config import settings
from flowdesk.logging_config import setup_logging
from flowdesk.routers import admin, message
from flowdesk.services.conversation_lock import ConversationLockManager
from flowdesk.services.delivery_service import HttpDeliveryGateway
from flowdesk.services.flow_graph import FlowCache

setup_logging(settings.log_level)

app = FastAPI(
    title="flowdesk",
    description="Bot-flow engine for the WhatsApp/Instagram support desk",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.flow_cache = FlowCache(settings.flow_cache_size)
app.state.conversation_locks = ConversationLockManager()
app.state.rng = random.Random(settings.random_seed)
app.state.delivery = HttpDeliveryGateway(settings)

app.include_router(message.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"status": "ok", "cached_flows": len(app.state.flow_cache)}
