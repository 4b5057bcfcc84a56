"""
action_engine/engine/runtime.py

ActionEngine - wires registry, guard, executor and dispatcher together.
"""
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING
import logging

from action_engine.ai.actions import ActionRegistry
from action_engine.ai.context import InvocationContext
from action_engine.ai.resolver import ActionResolver
from action_engine.engine.clock import SystemClock
from action_engine.engine.dispatcher import ActionDispatcher, Candidate
from action_engine.engine.executor import ActionExecutor, ExecutorConfig
from action_engine.engine.guard import ConcurrencyGuard
from action_engine.interfaces import Clock, EngineLogger, MemoryLog, StateStore

if TYPE_CHECKING:
    from action_engine.config import Settings

logger = logging.getLogger(__name__)


class ActionEngine:
    """
    Process-wide engine facade.

    Example:
        >>> engine = ActionEngine.from_settings(settings, state_store=store, memory_log=log)
        >>> register_builtin_actions(engine.registry)
        >>> engine.dispatch([{"action": "NONE"}], state={}, actor_id="u1")
    """

    def __init__(
        self,
        registry: Optional[ActionRegistry] = None,
        guard: Optional[ConcurrencyGuard] = None,
        config: Optional[ExecutorConfig] = None,
        clock: Optional[Clock] = None,
        state_store: Optional[StateStore] = None,
        memory_log: Optional[MemoryLog] = None,
        engine_logger: Optional[EngineLogger] = None,
    ):
        self.clock = clock or (guard.clock if guard else SystemClock())
        self.registry = registry or ActionRegistry()
        self.guard = guard or ConcurrencyGuard(clock=self.clock)
        self.state_store = state_store
        self.memory_log = memory_log
        self.executor = ActionExecutor(
            guard=self.guard,
            config=config,
            clock=self.clock,
            state_store=state_store,
            memory_log=memory_log,
        )
        self.resolver = ActionResolver(self.registry)
        self.dispatcher = ActionDispatcher(
            self.registry,
            executor=self.executor,
            guard=self.guard,
            engine_logger=engine_logger,
            memory_log=memory_log,
        )

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        clock: Optional[Clock] = None,
        **kwargs: Any,
    ) -> "ActionEngine":
        clock = clock or SystemClock()
        guard = ConcurrencyGuard(
            clock=clock,
            rate_limit=settings.RATE_LIMIT,
            rate_window_seconds=settings.RATE_WINDOW_SECONDS,
            lease_seconds=settings.LOCK_LEASE_SECONDS,
        )
        logger.info(f"ActionEngine configured: rate_limit={settings.RATE_LIMIT}/{settings.RATE_WINDOW_SECONDS}s, "
                    f"timeout={settings.HANDLER_TIMEOUT_SECONDS}s, attempts={settings.MAX_ATTEMPTS}")
        return cls(guard=guard, config=ExecutorConfig.from_settings(settings), clock=clock, **kwargs)

    def dispatch(
        self,
        candidates: Iterable[Candidate],
        state: Optional[Dict[str, Any]] = None,
        actor_id: Any = "anonymous",
    ) -> List[InvocationContext]:
        return self.dispatcher.dispatch(candidates, state=state, actor_id=actor_id)

    def shutdown(self) -> None:
        self.executor.shutdown()


__all__ = ["ActionEngine"]
