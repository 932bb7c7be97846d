from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.api.coach import router as coach_router
from app.coach.agent_actions import AgentActionStore
from app.coach.planner import CoachPlanner
from app.config.settings import settings
from app.core.logger import setup_logger


def create_app(planner: CoachPlanner | None = None, actions: AgentActionStore | None = None) -> FastAPI:
    """Build the coach API application.

    Args:
        planner: Planner serving turns. None selects the deterministic fallback.
        actions: Agent action registry shared by tools and the undo endpoints.
    """

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info(
            "Coach API starting",
            planner=planner.model_id if planner else "fallback-deterministic",
            max_messages=settings.coach_max_messages,
        )
        yield
        logger.info("Coach API stopped")

    application = FastAPI(title="Coach Turn API", lifespan=lifespan)
    application.state.coach_planner = planner
    application.state.agent_actions = actions or AgentActionStore()
    application.include_router(coach_router)

    @application.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    return application


setup_logger()
app = create_app()
