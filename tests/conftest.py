"""
Pytest configuration and shared fixtures
"""
import pytest
from unittest.mock import Mock

from action_engine.ai.actions import Action, ActionRegistry
from action_engine.engine.clock import ManualClock
from action_engine.engine.executor import ActionExecutor, ExecutorConfig, RetryPolicy
from action_engine.engine.guard import ConcurrencyGuard
from action_engine.engine.runtime import ActionEngine
from action_engine.stores import InMemoryMemoryLog, InMemoryStateStore


@pytest.fixture
def clock():
    """Deterministic clock; sleep() advances time instantly."""
    return ManualClock(start=1000.0)


@pytest.fixture
def registry():
    return ActionRegistry()


@pytest.fixture
def guard(clock):
    return ConcurrencyGuard(clock=clock, rate_limit=5, rate_window_seconds=60.0, lease_seconds=45.0)


@pytest.fixture
def state_store():
    return InMemoryStateStore()


@pytest.fixture
def memory_log():
    return InMemoryMemoryLog()


@pytest.fixture
def executor_config():
    """Generous attempt timeout with a fast retry policy."""
    return ExecutorConfig(
        timeout_seconds=5.0,
        lease_seconds=45.0,
        retry=RetryPolicy(max_attempts=3, initial_delay=0.5, multiplier=2.0, max_delay=10.0),
    )


@pytest.fixture
def executor(guard, executor_config, clock, state_store, memory_log):
    executor = ActionExecutor(
        guard=guard,
        config=executor_config,
        clock=clock,
        state_store=state_store,
        memory_log=memory_log,
    )
    yield executor
    executor.shutdown()


@pytest.fixture
def engine_logger():
    """EngineLogger double recording warn/error calls."""
    return Mock(spec=["warn", "error"])


@pytest.fixture
def engine(registry, guard, executor_config, clock, state_store, memory_log, engine_logger):
    engine = ActionEngine(
        registry=registry,
        guard=guard,
        config=executor_config,
        clock=clock,
        state_store=state_store,
        memory_log=memory_log,
        engine_logger=engine_logger,
    )
    yield engine
    engine.shutdown()


@pytest.fixture
def make_action():
    """Factory for simple actions with a recording handler."""
    def factory(name="test_action", handler=None, **kwargs):
        if handler is None:
            def handler(message, state, context):
                return {"ok": True, "action": name}
        return Action(name=name, handler=handler, **kwargs)

    return factory
