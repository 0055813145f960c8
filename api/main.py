import os
import logging
import logging.config
from typing import List

import yaml
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.schemas import (
    BatchRequest,
    CacheStats,
    DiagnosticSchema,
    FragmentRequest,
    HealthResponse,
    StreamResponse,
    TokenSchema,
)
from overlay.config import load_config
from overlay.coordinator import OverlayCoordinator
from overlay.models import AnnotatedStream, CodeFragment


def setup_logging():
    cfg_path = os.path.join("configs", "logging.yaml")
    if os.path.exists(cfg_path):
        try:
            with open(cfg_path, "r", encoding="utf-8") as f:
                config = yaml.safe_load(f)
            os.makedirs("logs", exist_ok=True)
            logging.config.dictConfig(config)
        except Exception as e:
            print(f"[logging] Failed to load logging.yaml: {e}")
            logging.basicConfig(level=logging.INFO)
    else:
        logging.basicConfig(level=logging.INFO)


def build_coordinator() -> OverlayCoordinator:
    cfg_path = os.environ.get("DOC_OVERLAY_CONFIG", os.path.join("configs", "overlay.yaml"))
    config = load_config(cfg_path if os.path.exists(cfg_path) else None)
    return OverlayCoordinator(config)


def to_response(stream: AnnotatedStream) -> StreamResponse:
    tokens = []
    for dt in stream.tokens:
        ann = dt.type_annotation
        tokens.append(
            TokenSchema(
                start=dt.token.start,
                end=dt.token.end,
                kind=dt.token.kind,
                text=dt.token.text,
                css_class=dt.token.css_class,
                type=ann.type_string if ann else None,
                confidence=ann.match_confidence.value if ann else None,
                docs=ann.docs if ann else None,
            )
        )
    return StreamResponse(
        origin=stream.origin,
        language_tag=stream.language_tag,
        degraded=stream.degraded,
        tokens=tokens,
        diagnostics=[
            DiagnosticSchema(stage=d.stage, reason=d.reason, detail=d.detail)
            for d in stream.diagnostics
        ],
    )


def to_fragment(req: FragmentRequest) -> CodeFragment:
    return CodeFragment(
        original_text=req.text,
        language_tag=req.language_tag,
        origin=req.origin,
        context=tuple(req.context),
    )


setup_logging()
logger = logging.getLogger("api")

app = FastAPI(
    title="Doc Type Overlay",
    version="0.1.0",
    description="Attaches analyzer type information to highlighted documentation code examples.",
)

# Docs front-end dev server
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.coordinator = build_coordinator()


@app.post("/overlay", response_model=StreamResponse)
def overlay(req: FragmentRequest) -> StreamResponse:
    logger.info("Received /overlay request for %s", req.origin or "<anonymous>")
    stream = app.state.coordinator.process_fragment(to_fragment(req))
    return to_response(stream)


@app.post("/overlay/batch", response_model=List[StreamResponse])
def overlay_batch(req: BatchRequest) -> List[StreamResponse]:
    logger.info("Received /overlay/batch request with %d fragments", len(req.fragments))
    streams = app.state.coordinator.process_fragments([to_fragment(f) for f in req.fragments])
    return [to_response(s) for s in streams]


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    coordinator = app.state.coordinator
    return HealthResponse(
        status="ok",
        enabled=coordinator.active,
        cache=CacheStats(
            hits=coordinator.cache.hits,
            misses=coordinator.cache.misses,
            size=len(coordinator.cache),
        ),
    )
