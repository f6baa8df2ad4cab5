"""
orgnet Backend - FastAPI service for organizer mappings and network layouts
"""
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import AliasChoices, BaseModel, Field
from typing import Optional, List, Dict, Any
from pathlib import Path
import os
import random
from dotenv import load_dotenv
import logging

from orgnet.analysis.engagement import parse_buckets
from orgnet.analysis.graph_builder import GraphBuilder, NetworkView
from orgnet.analysis.identity import IdentityResolver
from orgnet.analysis.link_aggregator import LinkAggregator
from orgnet.analysis.mapping_store import OrganizerMapping, create_mapping_store
from orgnet.errors import NotFoundError, OrgnetError, StoreError
from orgnet.simulation.force_engine import ForceSimulationEngine
from orgnet.utils.config_loader import load_config, simulation_settings
from orgnet.visualization.session import GraphSession

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load environment variables from .env file
load_dotenv()

app = FastAPI(title="orgnet API", version="0.1.0")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get(
        "ORGNET_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
    ).split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_config() -> Dict[str, Any]:
    config_path = os.environ.get("ORGNET_CONFIG")
    return load_config(Path(config_path) if config_path else None)


def get_resolver(request: Request) -> IdentityResolver:
    """One resolver per app, created on first use from the mapping_store config."""
    resolver = getattr(request.app.state, "resolver", None)
    if resolver is None:
        resolver = IdentityResolver(create_mapping_store(get_config()))
        request.app.state.resolver = resolver
    return resolver


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse({"success": False, "error": str(exc)}, status_code=404)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Mapping store failure on {request.url.path}: {exc}")
    return JSONResponse({"success": False, "error": str(exc)}, status_code=502)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"success": False, "error": "Invalid request", "details": jsonable_encoder(exc.errors())}, status_code=400)


class MappingRequest(BaseModel):
    primary_id: str = Field(..., min_length=1, validation_alias=AliasChoices("primary_id", "primary_vanid"))
    preferred_name: str = Field(..., min_length=1)
    alternate_ids: List[str] = Field(default_factory=list, validation_alias=AliasChoices("alternate_ids", "alternate_vanids"))
    name_variants: List[str] = Field(default_factory=list, validation_alias=AliasChoices("name_variants", "name_variations"))
    merged_from_ids: List[str] = Field(
        default_factory=list, validation_alias=AliasChoices("merged_from_ids", "merged_from_vanids")
    )
    email: Optional[str] = None
    phone: Optional[str] = None
    chapter: Optional[str] = None
    notes: Optional[str] = None
    person_type: Optional[str] = None
    in_van: Optional[bool] = None
    sync_status: Optional[str] = Field(None, validation_alias=AliasChoices("sync_status", "van_sync_status"))
    source: Optional[str] = None
    source_id: Optional[str] = None
    turf: Optional[str] = None
    team_role: Optional[str] = None
    created_at: Optional[str] = None
    merge_date: Optional[str] = None


class MergeRequest(BaseModel):
    primary_id: str = Field(..., min_length=1)
    merge_id: str = Field(..., min_length=1)


class VariantRequest(BaseModel):
    primary_id: str = Field(..., min_length=1)
    token: str = Field(..., min_length=1)
    is_id: bool = False
    preferred_name: Optional[str] = None


class PendingPersonRequest(BaseModel):
    name: str = Field(..., min_length=1)
    person_type: str = "constituent"
    source: Optional[str] = None
    source_id: Optional[str] = None
    chapter: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class NetworkRequest(BaseModel):
    view: NetworkView = NetworkView.CONNECTIONS
    teams: List[Dict[str, Any]] = Field(default_factory=list)
    meetings: List[Dict[str, Any]] = Field(default_factory=list)
    loe_levels: Optional[List[str]] = None
    chapter: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    layout: bool = True
    max_ticks: Optional[int] = Field(None, ge=0)
    seed: Optional[int] = None


class RenderRequest(NetworkRequest):
    width: int = Field(800, gt=0, le=8000)
    height: int = Field(600, gt=0, le=8000)
    device_pixel_ratio: float = Field(1.0, gt=0, le=4)
    search_text: str = ""
    selected_node_id: Optional[str] = None
    hovered_meeting_id: Optional[str] = None
    color_mode: str = "chapter"


def _buckets(levels: Optional[List[str]]):
    if levels is None:
        return None
    try:
        return parse_buckets(levels)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/")
async def root():
    return {
        "name": "orgnet API",
        "version": "0.1.0",
        "endpoints": {
            "organizer_mapping": "/api/organizer-mapping",
            "network": "/api/network",
            "render": "/api/network/render",
        },
    }


@app.get("/api/organizer-mapping")
def list_mappings(resolver: IdentityResolver = Depends(get_resolver)):
    return [m.model_dump() for m in sorted(resolver.mappings, key=lambda m: m.preferred_name.lower())]


@app.post("/api/organizer-mapping")
def upsert_mapping(payload: MappingRequest, resolver: IdentityResolver = Depends(get_resolver)):
    existing = resolver.get(payload.primary_id)
    base = existing.model_dump() if existing else {}
    base.update(payload.model_dump(exclude_unset=True))
    mapping = resolver.upsert(OrganizerMapping.model_validate(base))
    return {"success": True, "mapping": mapping.model_dump()}


@app.delete("/api/organizer-mapping/{primary_id}")
def delete_mapping(primary_id: str, resolver: IdentityResolver = Depends(get_resolver)):
    resolver.delete(primary_id)
    return {"success": True}


@app.post("/api/organizer-mapping/merge")
def merge_mappings(payload: MergeRequest, resolver: IdentityResolver = Depends(get_resolver)):
    merged = resolver.merge(payload.primary_id, payload.merge_id)
    return {"success": True, "mapping": merged.model_dump()}


@app.post("/api/organizer-mapping/variant")
def add_variant(payload: VariantRequest, resolver: IdentityResolver = Depends(get_resolver)):
    mapping = resolver.add_variant(payload.primary_id, payload.token, payload.is_id, payload.preferred_name)
    return {"success": True, "mapping": mapping.model_dump()}


@app.post("/api/organizer-mapping/pending")
def create_pending_person(payload: PendingPersonRequest, resolver: IdentityResolver = Depends(get_resolver)):
    new_id = resolver.create_pending(**payload.model_dump())
    return {"success": True, "primary_id": new_id}


@app.post("/api/network")
def build_network(payload: NetworkRequest, resolver: IdentityResolver = Depends(get_resolver)):
    """Build, aggregate and (optionally) lay out a network view."""
    config = get_config()
    rng = random.Random(payload.seed)
    builder = GraphBuilder(resolver=resolver, rng=rng)
    graph = builder.build(
        payload.view, payload.teams, payload.meetings, _buckets(payload.loe_levels),
        payload.chapter, payload.start_date, payload.end_date,
    )
    edges = LinkAggregator().aggregate(graph.edges, graph.nodes)
    ticks = 0
    if payload.layout and graph.nodes:
        engine = ForceSimulationEngine(graph.nodes, edges, simulation_settings(config), rng=rng)
        ticks = engine.run(payload.max_ticks)
    logger.info(f"Built {payload.view.value} network: {len(graph.nodes)} nodes, {len(edges)} edges, {ticks} ticks")
    return {
        "view": payload.view.value,
        "nodes": [n.to_dict() for n in graph.nodes],
        "edges": [e.to_dict() for e in edges],
        "team_centers": graph.to_dict()["team_centers"],
        "ticks": ticks,
    }


@app.post("/api/network/render")
def render_network(payload: RenderRequest, resolver: IdentityResolver = Depends(get_resolver)):
    """Lay out a network and return it as a PNG image."""
    config = dict(get_config())
    config["render"] = {
        **(config.get("render") or {}),
        "width": payload.width,
        "height": payload.height,
        "device_pixel_ratio": payload.device_pixel_ratio,
    }
    session = GraphSession(config, resolver=resolver, rng=random.Random(payload.seed))
    try:
        session.color_mode = payload.color_mode
        session.search_text = payload.search_text
        session.selected_node_id = payload.selected_node_id
        session.hovered_meeting_id = payload.hovered_meeting_id
        session.load(
            payload.view, payload.teams, payload.meetings, _buckets(payload.loe_levels),
            payload.chapter, payload.start_date, payload.end_date,
        )
        if payload.layout:
            session.run(payload.max_ticks)
        frame = session.render()
    finally:
        session.close()
    if frame is None:
        raise HTTPException(status_code=422, detail="Nothing to render: the graph is empty")
    return Response(content=session.canvas.to_png_bytes(), media_type="image/png")


@app.exception_handler(OrgnetError)
async def orgnet_error_handler(request: Request, exc: OrgnetError):
    return JSONResponse({"success": False, "error": str(exc)}, status_code=400)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", 8000)))
