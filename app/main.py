from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from core.logging_config import get_api_logger
from deck.assembler import SOURCE_CONSTANTS, DeckAssembler
from deck.config import Config
from deck.exceptions import NoImagesAvailable

from .schemas import DeckResponse, HealthResponse, SourcesResponse

logger = get_api_logger()

app = FastAPI(title="Hot or Slop Deck Server", version="1.0.0")

# CORS (relax as needed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_headers=["*"],
    allow_methods=["GET"],
)

# Global assembler singleton
ASSEMBLER: Optional[DeckAssembler] = None


@app.on_event("startup")
async def _startup():
    global ASSEMBLER
    try:
        ASSEMBLER = DeckAssembler.create()
    except Exception as e:
        # surface a useful error message on startup
        raise RuntimeError(f"Failed to initialize deck assembler: {e}") from e
    logger.info("Deck assembler ready")


@app.on_event("shutdown")
async def _shutdown():
    global ASSEMBLER
    if ASSEMBLER is not None:
        await ASSEMBLER.aclose()
        ASSEMBLER = None


def get_assembler() -> DeckAssembler:
    if ASSEMBLER is None:
        raise HTTPException(status_code=503, detail="Deck assembler not ready")
    return ASSEMBLER


def _deck_response(cards, requested: int) -> DeckResponse:
    fake = sum(1 for card in cards if card.is_ai)
    return DeckResponse(
        count=len(cards),
        requested=requested,
        fake=fake,
        real=len(cards) - fake,
        cards=cards,
    )


def _no_images(e: NoImagesAvailable) -> HTTPException:
    logger.error(f"Deck request failed: {e}")
    return HTTPException(
        status_code=503,
        detail="Could not reach the image datasets. Check your connection and try again.",
        headers={"Retry-After": "5"},
    )


@app.get("/health", response_model=HealthResponse)
def health():
    ok = ASSEMBLER is not None
    return HealthResponse(ok=ok, cache_sizes=ASSEMBLER.context.cache_sizes() if ok else None)


@app.get("/v1/sources", response_model=SourcesResponse)
def sources():
    return SourcesResponse(sources=SOURCE_CONSTANTS)


@app.get("/v1/deck", response_model=DeckResponse)
async def deck(
    count: int = Query(Config.DEFAULT_DECK_SIZE, ge=1, le=200),
    limit_per_fetch: int = Query(Config.DEFAULT_LIMIT_PER_FETCH, ge=1, le=Config.MAX_PAGE_SIZE),
    assembler: DeckAssembler = Depends(get_assembler),
):
    try:
        cards = await assembler.fetch_deck(count, limit_per_fetch)
    except NoImagesAvailable as e:
        raise _no_images(e)
    return _deck_response(cards, count)


@app.get("/v1/deck/quick", response_model=DeckResponse)
async def quick_deck(
    count: int = Query(Config.QUICK_DECK_SIZE, ge=1, le=200),
    assembler: DeckAssembler = Depends(get_assembler),
):
    try:
        cards = await assembler.fetch_quick_deck(count)
    except NoImagesAvailable as e:
        raise _no_images(e)
    return _deck_response(cards, count)
