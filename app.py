from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from google.api_core.exceptions import GoogleAPICallError
from pydantic import BaseModel, ValidationError

from advisor_flows import (
    interest_profiler,
    suggest_stream,
    recommend_degree_courses,
    explore_career_paths,
    advisor_chat,
    generate_career_plan,
    find_nearby_colleges,
)
from college_directory import get_colleges, search_colleges
from college_scraper import run_pipeline_from_settings
from config import get_settings
from firebase_service import HISTORY_KINDS
from models import (
    InterestProfilerRequest,
    InterestProfilerOutput,
    SuggestStreamRequest,
    SuggestStreamOutput,
    DegreeCourseRecommendationRequest,
    DegreeCourseRecommendationOutput,
    CareerPathExplorationRequest,
    CareerPathExplorationOutput,
    ChatRequest,
    ChatOutput,
    CareerPlanRequest,
    CareerPlanOutput,
    FindNearbyCollegesRequest,
    FindNearbyCollegesOutput,
    CollegeSearchParams,
    CollegeSearchResponse,
    HistoryResponse,
    ScrapeSummary,
    Settings,
)
from prompt_dispatcher import ModelsExhaustedError, PromptDispatcher, PromptDispatchError, build_dispatcher

logger = logging.getLogger(__name__)

app = FastAPI(title="Pathfinder Career Advisor API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# In-memory stores
LAST_REQUESTS_BY_IP: Dict[str, List[float]] = {}
_dispatcher: Optional[PromptDispatcher] = None


def get_dispatcher() -> PromptDispatcher:
    """One dispatcher per process so model rotation spreads load across requests."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher(get_settings())
    return _dispatcher


async def rate_limit(request: Request, settings: Settings = Depends(get_settings)):
    ip = request.client.host if request.client else "unknown"
    window = 60.0
    max_req = settings.rate_limit_requests_per_minute
    now = time.time()
    bucket = LAST_REQUESTS_BY_IP.setdefault(ip, [])
    # prune
    while bucket and now - bucket[0] > window:
        bucket.pop(0)
    if len(bucket) >= max_req:
        raise HTTPException(status_code=429, detail="Rate limit exceeded")
    bucket.append(now)


async def save_history_entries(user_id: str, kind: str, entries: List[Dict[str, Any]]) -> None:
    """Persist advisor history to Firestore. Failures are logged, never raised."""
    try:
        from firebase_service import get_firebase_service

        firebase_service = get_firebase_service()
        for entry in entries:
            await asyncio.to_thread(firebase_service.save_history, user_id, kind, entry)
    except ImportError as e:
        logger.warning("[History] Firebase service not available: %s", e)
    except Exception as e:
        logger.error("[History] Failed to save %s for user %s (non-fatal): %s", kind, user_id, e)


async def run_advisor(
    flow: Callable[[PromptDispatcher, Any], Awaitable[BaseModel]],
    payload: Any,
    dispatcher: PromptDispatcher,
) -> BaseModel:
    try:
        return await flow(dispatcher, payload)
    except ModelsExhaustedError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except (PromptDispatchError, GoogleAPICallError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("[Advisor] Unexpected failure")
        raise HTTPException(status_code=500, detail=f"Advisor request failed: {str(e)}")


async def run_and_record(
    flow: Callable[[PromptDispatcher, Any], Awaitable[BaseModel]],
    payload: Any,
    dispatcher: PromptDispatcher,
    kind: str,
) -> BaseModel:
    result = await run_advisor(flow, payload, dispatcher)
    if payload.user_id:
        await save_history_entries(payload.user_id, kind, [{
            "inputs": payload.model_dump(by_alias=True, exclude={"user_id"}),
            "result": result.model_dump(by_alias=True),
        }])
    return result


@app.get("/")
async def root():
    return {"status": "ok", "version": "0.1.0"}


# Advisor endpoints
@app.post("/api/advisor/interest-profile", response_model=InterestProfilerOutput, dependencies=[Depends(rate_limit)])
async def interest_profile_endpoint(request: InterestProfilerRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    return await run_and_record(interest_profiler, request, dispatcher, "profilerHistory")


@app.post("/api/advisor/stream-suggestion", response_model=SuggestStreamOutput, dependencies=[Depends(rate_limit)])
async def stream_suggestion_endpoint(request: SuggestStreamRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    return await run_and_record(suggest_stream, request, dispatcher, "streamSuggestionHistory")


@app.post(
    "/api/advisor/degree-recommendation",
    response_model=DegreeCourseRecommendationOutput,
    dependencies=[Depends(rate_limit)],
)
async def degree_recommendation_endpoint(
    request: DegreeCourseRecommendationRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)
):
    return await run_and_record(recommend_degree_courses, request, dispatcher, "degreeRecommendationHistory")


@app.post("/api/advisor/career-paths", response_model=CareerPathExplorationOutput, dependencies=[Depends(rate_limit)])
async def career_paths_endpoint(request: CareerPathExplorationRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    return await run_and_record(explore_career_paths, request, dispatcher, "careerExplorationHistory")


@app.post("/api/advisor/career-plan", response_model=CareerPlanOutput, dependencies=[Depends(rate_limit)])
async def career_plan_endpoint(request: CareerPlanRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    return await run_and_record(generate_career_plan, request, dispatcher, "careerPlanHistory")


@app.post("/api/advisor/nearby-colleges", response_model=FindNearbyCollegesOutput, dependencies=[Depends(rate_limit)])
async def nearby_colleges_endpoint(request: FindNearbyCollegesRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    return await run_and_record(find_nearby_colleges, request, dispatcher, "nearbyCollegesHistory")


@app.post("/api/advisor/chat", response_model=ChatOutput, dependencies=[Depends(rate_limit)])
async def chat_endpoint(request: ChatRequest, dispatcher: PromptDispatcher = Depends(get_dispatcher)):
    """
    Answer one chat turn. With a userId, both the question and the reply
    are stored as separate messages in the user's chat history.
    """
    asked_at = datetime.now(timezone.utc)
    result = await run_advisor(advisor_chat, request, dispatcher)
    if request.user_id:
        await save_history_entries(request.user_id, "chatHistory", [
            {"text": request.query, "sender": "user", "timestamp": asked_at},
            {"text": result.response, "sender": "ai", "timestamp": datetime.now(timezone.utc)},
        ])
    return result


@app.get("/api/users/{user_id}/history/{kind}", response_model=HistoryResponse)
async def get_user_history(user_id: str, kind: str, limit: int = Query(default=50, ge=1, le=200)):
    """
    Fetch a user's saved advisor results, newest first.

    Path Parameters:
        user_id: The user ID
        kind: History collection, e.g. profilerHistory or chatHistory
    """
    if kind not in HISTORY_KINDS:
        raise HTTPException(status_code=400, detail=f"Unknown history kind: {kind}")
    try:
        from firebase_service import get_firebase_service

        firebase_service = get_firebase_service()
        entries = await asyncio.to_thread(firebase_service.get_history, user_id, kind, limit)
        return HistoryResponse(user_id=user_id, kind=kind, entries=entries, count=len(entries))
    except ImportError as e:
        raise HTTPException(status_code=500, detail=f"Firebase service not available: {str(e)}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to fetch history: {str(e)}")


# College directory endpoints
@app.get("/api/colleges/search", response_model=CollegeSearchResponse)
async def colleges_search(request: Request, settings: Settings = Depends(get_settings)):
    try:
        params = CollegeSearchParams.model_validate(dict(request.query_params))
    except ValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "Invalid query parameters", "details": details})

    try:
        colleges = get_colleges(settings.colleges_json_path)
    except (OSError, ValueError) as e:
        logger.error("[Directory] Failed to load colleges dataset: %s", e)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to load the college directory.", "details": str(e)},
        )
    return search_colleges(colleges, params)


@app.get("/api/scrape-colleges")
async def scrape_colleges(settings: Settings = Depends(get_settings)):
    """
    Run the directory acquisition pipeline once and report what it did.
    """
    logger.info("[Scraper] Starting college scraping process...")
    try:
        from firebase_service import get_firebase_service

        store = get_firebase_service()
        summary = await run_pipeline_from_settings(settings, store)
    except Exception as e:
        logger.exception("[Scraper] An unexpected error occurred during the scraping process")
        summary = ScrapeSummary(errors=[str(e) or "An unknown error occurred."], aborted=True)

    if summary.aborted:
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "details": summary.model_dump(by_alias=True)},
        )
    return JSONResponse(status_code=200, content=summary.model_dump(by_alias=True))
