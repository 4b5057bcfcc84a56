"""
action_engine/routers/debug.py

Debug API - read-only view of the action engine.

Endpoints:
- GET /debug/actions          - Registered actions, registration order
- GET /debug/resolve/{token}  - Resolve a raw token the way dispatch would
- GET /debug/guard            - Lock and rate window state
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from action_engine.ai.normalizer import normalize
from action_engine.engine.runtime import ActionEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/debug", tags=["debug"])

# Singleton instance
_engine: Optional[ActionEngine] = None


def get_engine() -> ActionEngine:
    """Get or create the ActionEngine singleton."""
    global _engine
    if _engine is None:
        # Import here to avoid circular dependency
        from action_engine.main import build_engine
        _engine = build_engine()
    return _engine


class ActionInfo(BaseModel):
    name: str
    key: str
    description: str
    similes: List[str]
    category: str
    dependencies: List[str]


class ActionListResponse(BaseModel):
    actions: List[ActionInfo]
    total: int
    listing: str


class ResolveResponse(BaseModel):
    token: str
    normalized_key: str
    resolved: bool
    action: Optional[ActionInfo] = None


@router.get("/actions", response_model=ActionListResponse)
def list_actions(engine: ActionEngine = Depends(get_engine)):
    actions = [ActionInfo(**_info(a.to_dict())) for a in engine.registry.all()]
    return ActionListResponse(actions=actions, total=len(actions), listing=engine.registry.describe_actions())


@router.get("/resolve/{token}", response_model=ResolveResponse)
def resolve_token(token: str, engine: ActionEngine = Depends(get_engine)):
    action = engine.resolver.resolve(token)
    return ResolveResponse(
        token=token,
        normalized_key=normalize(token),
        resolved=action is not None,
        action=ActionInfo(**_info(action.to_dict())) if action is not None else None,
    )


@router.get("/guard")
def guard_state(engine: ActionEngine = Depends(get_engine)) -> Dict[str, Any]:
    return engine.guard.statistics()


def _info(data: Dict[str, Any]) -> Dict[str, Any]:
    return {field: data[field] for field in ActionInfo.model_fields}
