"""
Finite state machine runtime.

Maps (current state, trigger) to the next state with:
- Optional guards evaluated before a transition is taken
- Entry actions (sync or async) run after the state changes
- Explicit outcomes for triggers the current state does not accept

Entry actions may fire further triggers on the same machine; the state is
updated before entry actions run, so nested transitions start from the
destination state.
"""

from __future__ import annotations

import abc
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Mapping,
    Optional,
    Set,
    TypeVar,
    Union,
)

if TYPE_CHECKING:
    from ..host.scheduler import WorkflowTimer

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", bound=Enum)
TriggerT = TypeVar("TriggerT", bound=Enum)
ContextT = TypeVar("ContextT")


class FireOutcome(Enum):
    """Result of firing a trigger."""

    TRANSITIONED = "transitioned"
    IGNORED = "ignored"
    GUARD_REJECTED = "guard_rejected"


@dataclass(frozen=True)
class Transition(Generic[StateT, TriggerT]):
    """Describes the transition an entry action is running for."""

    source: StateT
    destination: StateT
    trigger: TriggerT
    payload: Mapping[str, Any] = field(default_factory=dict)


EntryAction = Callable[[Transition], Union[Awaitable[None], None]]
Guard = Callable[[], bool]


@dataclass
class _Rule(Generic[StateT]):
    destination: StateT
    guard: Optional[Guard] = None


class StateConfiguration(Generic[StateT, TriggerT]):
    """Fluent builder returned by :meth:`StateMachine.configure`."""

    def __init__(self, machine: "StateMachine[StateT, TriggerT]", state: StateT) -> None:
        self._machine = machine
        self._state = state

    def permit(
        self, trigger: TriggerT, destination: StateT, guard: Optional[Guard] = None
    ) -> "StateConfiguration[StateT, TriggerT]":
        self._machine._rules.setdefault(self._state, {})[trigger] = _Rule(destination, guard)
        return self

    def on_entry(self, action: EntryAction) -> "StateConfiguration[StateT, TriggerT]":
        self._machine._entry_actions.setdefault(self._state, []).append(action)
        return self


class StateMachine(Generic[StateT, TriggerT]):
    """Transition table plus the current state of one workflow instance."""

    def __init__(self, initial_state: StateT, name: str = "workflow") -> None:
        self.name = name
        self._state = initial_state
        self._rules: Dict[StateT, Dict[TriggerT, _Rule[StateT]]] = {}
        self._entry_actions: Dict[StateT, List[EntryAction]] = {}

    @property
    def state(self) -> StateT:
        return self._state

    def configure(self, state: StateT) -> StateConfiguration[StateT, TriggerT]:
        return StateConfiguration(self, state)

    def _rule_for(self, trigger: TriggerT) -> Optional[_Rule[StateT]]:
        return self._rules.get(self._state, {}).get(trigger)

    def can_fire(self, trigger: TriggerT) -> bool:
        """Return ``True`` if ``trigger`` would transition from the current state."""
        rule = self._rule_for(trigger)
        if rule is None:
            return False
        return rule.guard is None or bool(rule.guard())

    def permitted_triggers(self) -> Set[TriggerT]:
        return {t for t in self._rules.get(self._state, {}) if self.can_fire(t)}

    async def fire(
        self, trigger: TriggerT, payload: Optional[Mapping[str, Any]] = None
    ) -> FireOutcome:
        """Fire ``trigger`` and run the destination's entry actions.

        A trigger the current state does not accept leaves the state unchanged
        and is reported as ``IGNORED`` rather than raised.
        """
        source = self._state
        rule = self._rule_for(trigger)
        if rule is None:
            logger.info(
                f"{self.name}: ignoring trigger {trigger.value} in state {source.value}"
            )
            return FireOutcome.IGNORED
        if rule.guard is not None and not rule.guard():
            logger.info(
                f"{self.name}: guard rejected trigger {trigger.value} in state {source.value}"
            )
            return FireOutcome.GUARD_REJECTED

        transition = Transition(source, rule.destination, trigger, dict(payload or {}))
        self._state = rule.destination
        logger.info(
            f"{self.name}: {source.value} --{trigger.value}--> {rule.destination.value}"
        )
        for action in self._entry_actions.get(rule.destination, []):
            result = action(transition)
            if inspect.isawaitable(result):
                await result
        return FireOutcome.TRANSITIONED


class BaseWorkflow(Generic[ContextT, StateT, TriggerT], metaclass=abc.ABCMeta):
    """Pairs a context with a configured state machine.

    Subclasses build their transition table in :meth:`configure` and implement
    the start/status contract. The instance itself is never persisted; only
    its context and current state are.
    """

    def __init__(self, context: ContextT, initial_state: StateT) -> None:
        self.context = context
        self._machine: StateMachine[StateT, TriggerT] = StateMachine(
            initial_state, name=self.__class__.__name__
        )
        self.timer: Optional["WorkflowTimer"] = None
        self.configure(self._machine)

    @abc.abstractmethod
    def configure(self, machine: StateMachine[StateT, TriggerT]) -> None:
        """Register transitions and entry actions on ``machine``."""
        raise NotImplementedError

    @property
    def current_state(self) -> StateT:
        return self._machine.state

    async def fire(self, trigger: TriggerT, **payload: Any) -> FireOutcome:
        return await self._machine.fire(trigger, payload)

    def can_fire(self, trigger: TriggerT) -> bool:
        return self._machine.can_fire(trigger)

    def permitted_triggers(self) -> Set[TriggerT]:
        return self._machine.permitted_triggers()

    @abc.abstractmethod
    def can_start(self) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def start(self) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def current_status(self) -> str:
        raise NotImplementedError

    def available_actions(self) -> List[str]:
        return []

    async def handle_event(self, event_type: str, data: Mapping[str, Any]) -> bool:
        """Apply an external event; return ``False`` when it is not handled."""
        return False

    async def resume(self) -> bool:
        """Continue after being rebuilt from persisted context.

        Returns ``True`` when the context or state changed and should be saved.
        """
        return False

    async def on_timer_elapsed(self) -> bool:
        """Called by the scheduler when a timer armed by this workflow fires."""
        return False

    def _cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
