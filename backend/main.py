"""
Chemistry Quiz: FastAPI Backend
Serves the quiz API: login, AI-generated questions, scores and rankings.
"""

import logging
import os
import sqlite3
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from config import Config, config
from modules.auth import Identity, TokenService, current_identity, require_identity
from modules.database import Database
from modules.llm_client import LLMClient
from modules.question_cache import QuestionCache, QuestionNotFound
from modules.question_service import QuestionService
from modules.synthesizer import QuestionSynthesizer
from modules.users import UserNotFound, UserStore

logger = logging.getLogger(__name__)


# ── Pydantic models ────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    username: str = ""

class UpdateStatsRequest(BaseModel):
    acertos: int = Field(0, ge=0)
    erros: int = Field(0, ge=0)

class FixQuestionRequest(BaseModel):
    questionId: int
    correctAnswer: int = Field(..., ge=0, le=4)

class SubmitAnswerRequest(BaseModel):
    topic: str = ""
    correct: bool
    questionText: str
    userAnswer: str


# ── Dependencies ───────────────────────────────────────────────────────

def get_users(request: Request) -> UserStore:
    return request.app.state.users

def get_questions_service(request: Request) -> QuestionService:
    return request.app.state.questions

def get_config(request: Request) -> Config:
    return request.app.state.config


# ── App factory ────────────────────────────────────────────────────────

def create_app(cfg: Optional[Config] = None) -> FastAPI:
    cfg = cfg or config
    logging.basicConfig(
        level=getattr(logging, str(cfg.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = Database(cfg.DATABASE_PATH)
        db.create_tables()

        llm = LLMClient(
            api_key=cfg.GROQ_API_KEY,
            base_url=cfg.LLM_BASE_URL,
            model=cfg.LLM_MODEL,
            timeout=cfg.LLM_TIMEOUT_SECONDS,
        )
        if not llm.available:
            logger.warning("GROQ_API_KEY not set, questions will come from cache or the offline fallback")

        synthesizer = QuestionSynthesizer(
            llm,
            temperature=cfg.LLM_TEMPERATURE,
            max_tokens=cfg.LLM_MAX_TOKENS,
            known_texts_sample=cfg.KNOWN_TEXTS_SAMPLE,
        )
        app.state.config = cfg
        app.state.tokens = TokenService(cfg.JWT_SECRET, cfg.JWT_ALGORITHM)
        app.state.users = UserStore(db, level_step=cfg.LEVEL_STEP)
        app.state.questions = QuestionService(
            QuestionCache(db),
            synthesizer,
            known_texts_sample=cfg.KNOWN_TEXTS_SAMPLE,
            cache_fallback=cfg.CACHE_FALLBACK_QUESTIONS,
        )
        yield

    app = FastAPI(title="Chemistry Quiz", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(sqlite3.Error)
    async def storage_error(request: Request, exc: sqlite3.Error) -> JSONResponse:
        logger.exception("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Storage unavailable, try again"})

    _register_routes(app)
    return app


# ── API Routes ─────────────────────────────────────────────────────────

def _register_routes(app: FastAPI) -> None:

    @app.get("/")
    def root() -> dict:
        return {"status": "ok", "message": "Chemistry Quiz API running"}

    @app.post("/api/login")
    def login(req: LoginRequest, request: Request, users: UserStore = Depends(get_users)) -> dict:
        """Find-or-create a player by display name and hand back a bearer token."""
        username = req.username.strip()
        if not username:
            raise HTTPException(status_code=400, detail="Username is required")
        user, _ = users.find_or_create(username)
        token = request.app.state.tokens.issue(user.id, user.username)
        return {"token": token, "user": user.to_dict()}

    @app.get("/api/stats")
    def stats(
        identity: Identity = Depends(require_identity),
        users: UserStore = Depends(get_users),
    ) -> dict:
        user = users.get(identity.user_id)
        if user is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {
            "username": user.username,
            "total_acertos": user.total_acertos,
            "total_erros": user.total_erros,
            "nivel": user.nivel,
        }

    @app.post("/api/update-stats")
    def update_stats(
        req: UpdateStatsRequest,
        identity: Identity = Depends(current_identity),
        users: UserStore = Depends(get_users),
    ) -> dict:
        """Apply an end-of-session tally. Guests get a success with nothing stored."""
        try:
            progress = users.apply_result(identity.user_id, req.acertos, req.erros)
        except UserNotFound:
            raise HTTPException(status_code=404, detail="User not found")
        if progress is None:
            return {"success": True, "nivel": None}
        return {
            "success": True,
            "nivel": progress.level,
            "total_acertos": progress.total_correct,
        }

    @app.get("/api/generate-question")
    def generate_question(
        topic: Optional[str] = None,
        customPrompt: str = "",
        count: int = 1,
        identity: Identity = Depends(current_identity),
        service: QuestionService = Depends(get_questions_service),
        cfg: Config = Depends(get_config),
    ) -> list[dict]:
        """Core entry point: N questions on a topic, from cache or freshly generated."""
        topic = (topic or "").strip() or cfg.DEFAULT_TOPIC
        count = min(max(count, 1), cfg.MAX_QUESTIONS_PER_REQUEST)
        return service.get_questions(topic, customPrompt, count)

    @app.post("/api/fix-question")
    def fix_question(
        req: FixQuestionRequest,
        identity: Identity = Depends(current_identity),
        service: QuestionService = Depends(get_questions_service),
    ) -> dict:
        try:
            service.fix_question(req.questionId, req.correctAnswer)
        except QuestionNotFound:
            raise HTTPException(status_code=404, detail="Question not found")
        logger.info("Answer key of question %s corrected by %s", req.questionId, identity.username)
        return {"success": True, "message": "Gabarito atualizado"}

    @app.get("/api/rankings")
    def rankings(
        limit: Optional[int] = None,
        users: UserStore = Depends(get_users),
        cfg: Config = Depends(get_config),
    ) -> list[dict]:
        limit = cfg.RANKING_LIMIT if limit is None else limit
        limit = min(max(limit, 1), cfg.RANKING_MAX_LIMIT)
        return [
            {"nickname": u.username, "xp": u.total_acertos, "nivel": u.nivel}
            for u in users.top_by_correct(limit)
        ]

    @app.post("/api/submit")
    def submit_answer(
        req: SubmitAnswerRequest,
        identity: Identity = Depends(current_identity),
        users: UserStore = Depends(get_users),
        cfg: Config = Depends(get_config),
    ) -> dict:
        """Log one answered question to the player's history."""
        if identity.is_guest:
            return {"success": True}
        if users.get(identity.user_id) is None:
            raise HTTPException(status_code=404, detail="User not found")
        users.record_attempt(
            identity.user_id,
            topic=req.topic.strip() or cfg.DEFAULT_TOPIC,
            correct=req.correct,
            question_text=req.questionText,
            user_answer=req.userAnswer,
        )
        return {"success": True}

    @app.get("/api/history")
    def history(
        identity: Identity = Depends(require_identity),
        users: UserStore = Depends(get_users),
        cfg: Config = Depends(get_config),
    ) -> list[dict]:
        return users.recent_history(identity.user_id, cfg.HISTORY_LIMIT)


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
