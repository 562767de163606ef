"""Interactive assignment session: active method, active result, recovery."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence
import logging

from models import FlightLeg, AssignableAircraft, TailAssignmentResult
from assignment.config import EngineConfig, AssignmentMethod
from assignment.conflicts import LegConflict, annotate_rotation
from assignment.constructor import construct_assignment
from assignment.overrides import (
    OverrideRepository,
    apply_overrides,
    overrides_from_assignments,
)
from assignment.refiner import (
    CancellationToken,
    RefinementHandle,
    RefinementRunner,
    RefinementStats,
    SAProgress,
    get_preset,
)
from assignment.solver.base import (
    SolverCancelled,
    SolverError,
    SolverResponse,
    build_request,
    get_mip_preset,
    response_to_result,
)
from assignment.swap import SwapValidation, apply_swap, validate_result_swap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A user-facing message raised by the session."""
    level: str
    message: str
    timestamp: datetime = field(default_factory=datetime.now)


class AssignmentSession:
    """
    Holds the currently displayed assignment and the method that produced it.

    Every engine call either replaces both or leaves both untouched: a failed
    or cancelled exact solve restores the previous method and result and
    records a notification instead of raising.
    """

    def __init__(
        self,
        flights: List[FlightLeg],
        aircraft: List[AssignableAircraft],
        config: EngineConfig,
        solver=None,
        overrides: Optional[OverrideRepository] = None
    ):
        self.aircraft = list(aircraft)
        self.config = config
        self.solver = solver
        self.overrides = overrides
        self._raw_flights = list(flights)
        self.flights = self._merge_overrides()

        self.result: Optional[TailAssignmentResult] = None
        self.active_method: Optional[str] = None
        self.notifications: List[Notification] = []
        self.last_refinement: Optional[RefinementStats] = None
        self.last_solver_response: Optional[SolverResponse] = None

        self._runner = RefinementRunner()
        self._solver_token: Optional[CancellationToken] = None

    def _merge_overrides(self) -> List[FlightLeg]:
        if self.overrides is None:
            return list(self._raw_flights)
        return apply_overrides(self._raw_flights, self.overrides.list())

    def notify(self, level: str, message: str) -> None:
        self.notifications.append(Notification(level, message))

    def reload_overrides(self) -> None:
        """Re-read the override repository; the next engine run sees new pins."""
        self.flights = self._merge_overrides()

    # --- constructor / refiner ------------------------------------------

    def construct(self, method: Optional[AssignmentMethod] = None) -> TailAssignmentResult:
        config = self.config if method is None else replace(self.config, method=method)
        self.result = construct_assignment(self.flights, self.aircraft, config)
        self.active_method = config.method.value
        return self.result

    def start_refinement(
        self,
        preset: str = "normal",
        on_progress: Optional[Callable[[SAProgress], None]] = None,
        seed: Optional[int] = None
    ) -> RefinementHandle:
        """
        Start refining the active result in the background.

        A refinement already running is cancelled first.

        Raises:
            ValueError: If there is no result to refine or the preset is unknown
        """
        if self.result is None:
            raise ValueError("No assignment to refine; run construct() first")
        return self._runner.start(
            self.result, self.flights, self.aircraft, self.config,
            get_preset(preset), on_progress=on_progress, seed=seed
        )

    def finish_refinement(
        self,
        handle: RefinementHandle,
        timeout: Optional[float] = None
    ) -> TailAssignmentResult:
        """Wait for a refinement and adopt its result."""
        outcome = handle.result(timeout=timeout)
        self.last_refinement = outcome.stats
        self.result = outcome.result
        self.active_method = "refined"
        if outcome.stats.cancelled:
            self.notify("info", "Refinement cancelled; kept the best assignment found")
        return self.result

    def cancel_refinement(self) -> None:
        current = self._runner.current
        if current is not None:
            current.cancel()

    # --- exact solver ----------------------------------------------------

    def solve_exact(self, preset: str = "normal") -> Optional[TailAssignmentResult]:
        """
        Replace the active result with an exact solve.

        On failure or cancellation the previous method and result are
        restored and a notification is added.
        """
        if self.solver is None:
            self.notify("error", "No exact solver configured")
            return self.result

        previous_method, previous_result = self.active_method, self.result
        self.active_method = "mip"
        self._solver_token = CancellationToken()
        request = build_request(self.flights, self.aircraft, self.config, get_mip_preset(preset))

        try:
            response = self.solver.solve(request, self._solver_token)
            self.last_solver_response = response
            result = response_to_result(response, request, self.config)
        except SolverCancelled as e:
            logger.warning(f"Exact solve cancelled: {e}")
            self._restore(previous_method, previous_result)
            self.notify("warning", "Solver cancelled; previous assignment restored")
            return self.result
        except SolverError as e:
            logger.warning(f"Exact solve failed, restoring {previous_method}: {e}")
            self._restore(previous_method, previous_result)
            self.notify("error", f"Solver failed: {e}")
            return self.result
        finally:
            self._solver_token = None

        self.result = result
        return result

    def cancel_solve(self) -> None:
        if self._solver_token is not None:
            self._solver_token.cancel()

    def _restore(self, method: Optional[str], result: Optional[TailAssignmentResult]) -> None:
        self.active_method = method
        self.result = result

    # --- interactive edits -----------------------------------------------

    def validate_swap(
        self,
        group_a: Sequence[FlightLeg],
        registration_a: str,
        group_b: Sequence[FlightLeg],
        registration_b: str,
        pin: bool = False
    ) -> SwapValidation:
        if self.result is None:
            raise ValueError("No active assignment")
        return validate_result_swap(
            self.result, group_a, registration_a, group_b, registration_b,
            self.flights, self.aircraft, self.config,
            pin=pin and self.overrides is not None
        )

    def swap(
        self,
        group_a: Sequence[FlightLeg],
        registration_a: str,
        group_b: Sequence[FlightLeg],
        registration_b: str,
        pin: bool = False
    ) -> TailAssignmentResult:
        """
        Apply a swap to the active result; optionally persist it as overrides.

        Pinned legs can only move with ``pin=True`` and an override
        repository, so their overrides are rewritten along with the result.

        Raises:
            ValueError: If the swap is infeasible (the active result is unchanged)
        """
        if self.result is None:
            raise ValueError("No active assignment")
        repin = pin and self.overrides is not None
        if pin and not repin:
            logger.warning("Swap requested with pin=True but no override repository is attached")
        swapped = apply_swap(
            self.result, group_a, registration_a, group_b, registration_b,
            self.flights, self.aircraft, self.config, pin=repin
        )
        self.result = swapped
        if repin:
            moved = [leg.key for leg in list(group_a) + list(group_b)]
            self.overrides.commit_many(overrides_from_assignments(swapped.assignments, moved))
            self.reload_overrides()
        return swapped

    def annotate(self, registration: str) -> List[LegConflict]:
        """Per-pair conflict detail for one tail of the active result."""
        if self.result is None:
            return []
        types = {ac.registration: ac.aircraft_type for ac in self.aircraft}
        return annotate_rotation(
            registration,
            self.result.rotation(registration, self.flights),
            self.config,
            types.get(registration)
        )

    def close(self) -> None:
        self._runner.shutdown()
