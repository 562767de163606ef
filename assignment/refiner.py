"""Simulated annealing improvement of a constructed tail assignment."""

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple
import logging
import math
import random
import threading
import time

from models import (
    FlightLeg,
    FlightKey,
    AssignableAircraft,
    TailAssignmentResult,
    route_blocks,
)
from assignment.config import (
    EngineConfig,
    AssignmentMethod,
    OVERFLOW_COST,
    CHAIN_BREAK_COST,
    FAMILY_SUB_COST,
    TAT_VIOLATION_COST,
    IDLE_GAP_THRESHOLD_MINUTES,
    IDLE_GAP_COST_PER_HOUR,
    UTILIZATION_SPREAD_WEIGHT,
    TAILS_USED_COST,
)
from assignment.conflicts import evaluate_gap, annotate_assignment
from assignment.rules import RotationContext, evaluate_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SAConfig:
    """
    Annealing schedule.

    Attributes:
        time_budget_seconds: Maximum runtime
        initial_temp: Starting temperature (higher = more exploration)
        cooling_rate: Temperature multiplier per iteration
        report_interval_seconds: Minimum time between progress reports
        max_iterations: Iteration cap
        swap_probability: Share of proposals that swap two flights
    """
    time_budget_seconds: float
    initial_temp: float
    cooling_rate: float
    report_interval_seconds: float
    max_iterations: int = 200000
    swap_probability: float = 0.3


SA_PRESETS: Dict[str, SAConfig] = {
    "quick": SAConfig(5.0, 10000.0, 0.9995, 0.2, max_iterations=50000),
    "normal": SAConfig(15.0, 15000.0, 0.9998, 0.3, max_iterations=200000),
    "deep": SAConfig(30.0, 20000.0, 0.9999, 0.5, max_iterations=500000),
}


def get_preset(name: str) -> SAConfig:
    try:
        return SA_PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown refinement preset '{name}' (choose from {sorted(SA_PRESETS)})")


@dataclass
class SAProgress:
    """Progress report for a running refinement."""
    iteration: int
    current_cost: float
    best_cost: float
    initial_cost: float
    temperature: float
    elapsed_seconds: float
    accepted_moves: int
    rejected_moves: int
    time_budget_seconds: float

    @property
    def improvement(self) -> float:
        """Improvement of the best cost over the initial cost, in percent."""
        if self.initial_cost <= 0:
            return 0.0
        return (self.initial_cost - self.best_cost) / self.initial_cost * 100


@dataclass
class RefinementStats:
    """Summary of a finished refinement."""
    initial_cost: float
    final_cost: float
    iterations: int
    accepted_moves: int
    rejected_moves: int
    elapsed_seconds: float
    cancelled: bool = False

    @property
    def improvement(self) -> float:
        if self.initial_cost <= 0:
            return 0.0
        return (self.initial_cost - self.final_cost) / self.initial_cost * 100

    def to_dict(self) -> dict:
        return {
            "initial_cost": self.initial_cost,
            "final_cost": self.final_cost,
            "improvement": self.improvement,
            "iterations": self.iterations,
            "accepted_moves": self.accepted_moves,
            "rejected_moves": self.rejected_moves,
            "elapsed_seconds": self.elapsed_seconds,
            "cancelled": self.cancelled,
        }


@dataclass
class RefinementResult:
    """Refined assignment plus run statistics."""
    result: TailAssignmentResult
    stats: RefinementStats


class CancellationToken:
    """Cooperative cancellation signal shared between caller and refiner."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AssignmentCost:
    """
    Cost of a complete assignment, cached per tail.

    cost = overflow + chain breaks + TAT violations + soft rule penalties
           + family substitutions + objective term
    where the objective term is idle time and tails used for ``minimize`` and
    the spread of block minutes across the fleet for ``balance``.
    """

    def __init__(
        self,
        flights: List[FlightLeg],
        aircraft: List[AssignableAircraft],
        config: EngineConfig
    ):
        self.flights = {f.key: f for f in flights}
        self.aircraft = {ac.registration: ac for ac in aircraft if ac.is_active}
        self.config = config

    def tail_type(self, registration: str, legs: List[FlightLeg]) -> str:
        ac = self.aircraft.get(registration)
        if ac is not None:
            return ac.aircraft_type
        return legs[0].aircraft_type if legs else ""

    def tail_cost(self, registration: str, legs: List[FlightLeg]) -> float:
        """Cost contribution of one tail's chronologically sorted legs."""
        if not legs:
            return 0.0

        ac_type = self.tail_type(registration, legs)
        ac = self.aircraft.get(registration)
        cost = 0.0
        block_by_date: Dict = {}

        for i, leg in enumerate(legs):
            if ac_type != leg.aircraft_type:
                cost += FAMILY_SUB_COST

            if self.config.rules and ac is not None:
                context = RotationContext(
                    previous=legs[i - 1] if i > 0 else None,
                    block_minutes_today=block_by_date.get(leg.date, 0)
                )
                evaluation = evaluate_rules(
                    leg, ac, self.config.rules, context, self.config.type_families
                )
                cost += evaluation.total_penalty
            block_by_date[leg.date] = block_by_date.get(leg.date, 0) + leg.block_minutes

            if i == 0:
                continue
            prev = legs[i - 1]
            if prev.arr_station != leg.dep_station:
                cost += CHAIN_BREAK_COST
            elif not prev.same_route_as(leg):
                check = evaluate_gap(prev, leg, self.config, ac_type)
                if check is not None and not check.ok:
                    cost += TAT_VIOLATION_COST

            if self.config.method == AssignmentMethod.MINIMIZE and prev.date == leg.date:
                gap = leg.start - prev.end
                if gap > IDLE_GAP_THRESHOLD_MINUTES:
                    hours = (gap - IDLE_GAP_THRESHOLD_MINUTES) // 60
                    cost += hours * IDLE_GAP_COST_PER_HOUR

        return cost

    def global_cost(self, overflow_count: int, block_minutes: Iterable[int], tails_used: int) -> float:
        cost = overflow_count * OVERFLOW_COST
        if self.config.method == AssignmentMethod.BALANCE:
            values = list(block_minutes)
            if len(values) > 1:
                mean = sum(values) / len(values)
                variance = sum((v - mean) ** 2 for v in values) / len(values)
                cost += math.sqrt(variance) * UTILIZATION_SPREAD_WEIGHT
        else:
            cost += tails_used * TAILS_USED_COST
        return cost

    def total(self, assignments: Dict[FlightKey, str]) -> float:
        """Full cost of an assignment over this instance's flights."""
        rotations = rotations_for(assignments, self.flights.values())
        overflow = sum(1 for key in self.flights if key not in assignments)
        tail_costs = sum(self.tail_cost(reg, legs) for reg, legs in rotations.items())
        minutes = block_minutes_for(rotations, self.aircraft)
        used = sum(1 for legs in rotations.values() if legs)
        return tail_costs + self.global_cost(overflow, minutes.values(), used)


def rotations_for(
    assignments: Dict[FlightKey, str],
    flights: Iterable[FlightLeg]
) -> Dict[str, List[FlightLeg]]:
    by_reg: Dict[str, List[FlightLeg]] = {}
    for flight in flights:
        reg = assignments.get(flight.key)
        if reg is not None:
            by_reg.setdefault(reg, []).append(flight)
    for legs in by_reg.values():
        legs.sort(key=lambda f: (f.start, f.end))
    return by_reg


def block_minutes_for(
    rotations: Dict[str, List[FlightLeg]],
    aircraft: Dict[str, AssignableAircraft]
) -> Dict[str, int]:
    """Block minutes per tail, including idle active tails."""
    minutes = {reg: 0 for reg in aircraft}
    for reg, legs in rotations.items():
        minutes[reg] = sum(f.block_minutes for f in legs)
    return minutes


def assignment_cost(
    result: TailAssignmentResult,
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig
) -> float:
    """Cost of a result under the refiner's objective."""
    return AssignmentCost(flights, aircraft, config).total(result.assignments)


class SimulatedAnnealingRefiner:
    """
    Local search over a complete assignment.

    Moves reassign one rotation unit (a standalone leg, or the free legs of
    a route on one date) to another feasible tail, or swap the tails of two
    units. Worse moves are accepted with
    probability exp(-delta / temperature). The best assignment seen is
    returned, so the result never costs more than the starting point.
    """

    def __init__(
        self,
        flights: List[FlightLeg],
        aircraft: List[AssignableAircraft],
        config: EngineConfig,
        sa_config: SAConfig = SA_PRESETS["normal"],
        seed: Optional[int] = None
    ):
        self.flights = list(flights)
        self.by_key = {f.key: f for f in self.flights}
        self.aircraft = [ac for ac in aircraft if ac.is_active]
        self.by_reg = {ac.registration: ac for ac in self.aircraft}
        self.config = config
        self.sa_config = sa_config
        self.rng = random.Random(seed)
        self.cost_model = AssignmentCost(self.flights, self.aircraft, config)

        # Mutable search state
        self._assignments: Dict[FlightKey, str] = {}
        self._rotations: Dict[str, List[FlightLeg]] = {}
        self._tail_costs: Dict[str, float] = {}
        self._block_minutes: Dict[str, int] = {}

    # --- state -----------------------------------------------------------

    def _load(self, assignments: Dict[FlightKey, str]) -> None:
        self._assignments = {k: v for k, v in assignments.items() if k in self.by_key}
        self._rotations = rotations_for(self._assignments, self.flights)
        for reg in self.by_reg:
            self._rotations.setdefault(reg, [])
        self._tail_costs = {
            reg: self.cost_model.tail_cost(reg, legs)
            for reg, legs in self._rotations.items()
        }
        self._block_minutes = block_minutes_for(self._rotations, self.by_reg)

    def _cost(self) -> float:
        overflow = len(self.by_key) - len(self._assignments)
        used = sum(1 for legs in self._rotations.values() if legs)
        return sum(self._tail_costs.values()) + self.cost_model.global_cost(
            overflow, self._block_minutes.values(), used
        )

    def _move(self, flight: FlightLeg, target: Optional[str]) -> None:
        """Move a flight to ``target`` (None = overflow), updating caches."""
        source = self._assignments.get(flight.key)
        touched = set()
        if source is not None:
            self._rotations[source] = [f for f in self._rotations[source] if f.key != flight.key]
            touched.add(source)
            del self._assignments[flight.key]
        if target is not None:
            legs = self._rotations.setdefault(target, [])
            legs.append(flight)
            legs.sort(key=lambda f: (f.start, f.end))
            self._assignments[flight.key] = target
            touched.add(target)
        for reg in touched:
            legs = self._rotations[reg]
            self._tail_costs[reg] = self.cost_model.tail_cost(reg, legs)
            if reg in self.by_reg:
                self._block_minutes[reg] = sum(f.block_minutes for f in legs)

    # --- feasibility ------------------------------------------------------

    def eligible_tails(self, legs: List[FlightLeg]) -> List[AssignableAircraft]:
        return [
            ac for ac in self.aircraft
            if all(self.config.can_operate(f.aircraft_type, ac.aircraft_type) for f in legs)
        ]

    def _rotation_after(
        self,
        registration: str,
        incoming: List[FlightLeg],
        ignore: Set[FlightKey]
    ) -> List[FlightLeg]:
        """A tail's legs once ``ignore`` has left and ``incoming`` has arrived."""
        moving = ignore | {f.key for f in incoming}
        remaining = [f for f in self._rotations.get(registration, []) if f.key not in moving]
        return sorted(remaining + list(incoming), key=lambda f: (f.start, f.end))

    def rules_hold(self, ac: AssignableAircraft, legs: List[FlightLeg], dates: Set) -> bool:
        """
        Check that no free leg on ``dates`` breaks a hard rule in this rotation.

        Every leg is re-evaluated in its final position, so a flight inserted
        early in the day is also checked against the block time it adds to
        the legs after it.
        """
        if not self.config.rules:
            return True
        block_by_date: Dict = {}
        legs_by_date: Dict = {}
        for i, leg in enumerate(legs):
            if leg.date in dates and not leg.is_pinned:
                context = RotationContext(
                    previous=legs[i - 1] if i > 0 else None,
                    legs_today=legs_by_date.get(leg.date, 0),
                    block_minutes_today=block_by_date.get(leg.date, 0)
                )
                evaluation = evaluate_rules(
                    leg, ac, self.config.rules, context, self.config.type_families
                )
                if not evaluation.allowed:
                    return False
            block_by_date[leg.date] = block_by_date.get(leg.date, 0) + leg.block_minutes
            legs_by_date[leg.date] = legs_by_date.get(leg.date, 0) + 1
        return True

    def can_place_block(
        self,
        block: List[FlightLeg],
        registration: str,
        ignore: Set[FlightKey]
    ) -> bool:
        """
        Check if a rotation unit fits on a tail, ignoring legs that are moving away.

        Overlaps, TAT shortfalls at a connecting station and hard rules are
        infeasible; station mismatches are allowed and priced as chain breaks.
        Consecutive legs of one route are exempt from the station and TAT checks.
        """
        ac = self.by_reg.get(registration)
        if ac is None:
            return False
        if not all(self.config.can_operate(f.aircraft_type, ac.aircraft_type) for f in block):
            return False

        block_keys = {f.key for f in block}
        rotation = self._rotation_after(registration, block, ignore)

        for leg in block:
            for other in rotation:
                if other.key not in block_keys and other.overlaps(leg):
                    return False

        for prev, nxt in zip(rotation, rotation[1:]):
            if prev.key not in block_keys and nxt.key not in block_keys:
                continue
            if prev.overlaps(nxt):
                return False
            if prev.same_route_as(nxt):
                continue
            check = evaluate_gap(prev, nxt, self.config, ac.aircraft_type)
            if check is not None and not check.ok:
                return False

        dates = {f.date for f in block}
        dates.update(self.by_key[k].date for k in ignore if k in self.by_key)
        return self.rules_hold(ac, rotation, dates)

    def _sources_hold(self, block: List[FlightLeg], target: str) -> bool:
        """Check the tails a block leaves behind still satisfy their hard rules."""
        keys = {f.key for f in block}
        dates = {f.date for f in block}
        sources = {self._assignments.get(f.key) for f in block} - {None, target}
        for reg in sources:
            ac = self.by_reg.get(reg)
            if ac is not None and not self.rules_hold(ac, self._rotation_after(reg, [], keys), dates):
                return False
        return True

    def _block_tail(self, block: List[FlightLeg]) -> Optional[str]:
        """The one tail flying the whole block, if there is one."""
        regs = {self._assignments.get(f.key) for f in block}
        if len(regs) != 1:
            return None
        return regs.pop()

    # --- neighbourhood ---------------------------------------------------

    def _propose(
        self,
        blocks: List[List[FlightLeg]]
    ) -> Optional[List[Tuple[FlightLeg, Optional[str]]]]:
        """
        Propose a feasible neighbour as a list of (flight, new tail) moves.

        Every proposal moves whole rotation units, so the free legs of a
        route on one date always end up together. Returns None when the
        sampled proposal is infeasible.
        """
        if self.rng.random() < self.sa_config.swap_probability:
            first = self.rng.choice(blocks)
            second = self.rng.choice(blocks)
            reg_a = self._block_tail(first)
            reg_b = self._block_tail(second)
            if reg_a is None or reg_b is None or reg_a == reg_b:
                return None
            keys_a = {f.key for f in first}
            keys_b = {f.key for f in second}
            if not self.can_place_block(first, reg_b, keys_b):
                return None
            if not self.can_place_block(second, reg_a, keys_a):
                return None
            return [(f, reg_b) for f in first] + [(f, reg_a) for f in second]

        block = self.rng.choice(blocks)
        tails = self.eligible_tails(block)
        if not tails:
            return None
        target = self.rng.choice(tails).registration
        if self._block_tail(block) == target:
            return None
        if not self.can_place_block(block, target, set()):
            return None
        if not self._sources_hold(block, target):
            return None
        return [(f, target) for f in block]

    # --- main loop -------------------------------------------------------

    def refine(
        self,
        initial: TailAssignmentResult,
        on_progress: Optional[Callable[[SAProgress], None]] = None,
        token: Optional[CancellationToken] = None
    ) -> RefinementResult:
        """
        Improve a constructed assignment.

        Args:
            initial: Starting assignment (not modified)
            on_progress: Called at most once per report interval
            token: Cancellation token polled at the start of every iteration

        Returns:
            RefinementResult with the best assignment found
        """
        cfg = self.sa_config
        start_time = time.time()
        self._load(initial.assignments)

        movable = [f for f in self.flights if not f.is_pinned]
        blocks = route_blocks(movable)
        initial_cost = self._cost()
        current_cost = initial_cost
        best_cost = initial_cost
        best_assignments = dict(self._assignments)

        temperature = cfg.initial_temp
        iteration = 0
        accepted = 0
        rejected = 0
        cancelled = False
        last_report = start_time

        logger.info(
            f"Refining {len(movable)} movable flights in {len(blocks)} blocks "
            f"from cost {initial_cost:.0f} "
            f"(budget {cfg.time_budget_seconds:.0f}s)"
        )

        while blocks and iteration < cfg.max_iterations:
            if token is not None and token.cancelled:
                cancelled = True
                break
            now = time.time()
            if now - start_time >= cfg.time_budget_seconds:
                break

            iteration += 1
            moves = self._propose(blocks)
            if moves is not None:
                previous = [(flight, self._assignments.get(flight.key)) for flight, _ in moves]
                for flight, target in moves:
                    self._move(flight, target)

                new_cost = self._cost()
                delta = new_cost - current_cost
                if delta < 0 or self.rng.random() < math.exp(-delta / max(temperature, 1e-9)):
                    current_cost = new_cost
                    accepted += 1
                    if current_cost < best_cost:
                        best_cost = current_cost
                        best_assignments = dict(self._assignments)
                else:
                    for flight, source in reversed(previous):
                        self._move(flight, source)
                    rejected += 1

            temperature *= cfg.cooling_rate

            if on_progress is not None and now - last_report >= cfg.report_interval_seconds:
                last_report = now
                on_progress(SAProgress(
                    iteration=iteration,
                    current_cost=current_cost,
                    best_cost=best_cost,
                    initial_cost=initial_cost,
                    temperature=temperature,
                    elapsed_seconds=now - start_time,
                    accepted_moves=accepted,
                    rejected_moves=rejected,
                    time_budget_seconds=cfg.time_budget_seconds
                ))

        elapsed = time.time() - start_time
        if cancelled:
            logger.warning(f"Refinement cancelled after {iteration} iterations; keeping best found")

        stats = RefinementStats(
            initial_cost=initial_cost,
            final_cost=best_cost,
            iterations=iteration,
            accepted_moves=accepted,
            rejected_moves=rejected,
            elapsed_seconds=elapsed,
            cancelled=cancelled
        )
        logger.info(
            f"Refinement finished: cost {initial_cost:.0f} -> {best_cost:.0f} "
            f"({stats.improvement:.1f}%) in {iteration} iterations"
        )

        if best_cost >= initial_cost:
            return RefinementResult(result=initial, stats=stats)
        refined = annotate_assignment(
            best_assignments,
            self.flights,
            self.aircraft,
            self.config,
            method=initial.method,
            rejections=initial.rejections,
            override_conflicts=initial.override_conflicts
        )
        return RefinementResult(result=refined, stats=stats)


def refine_assignment(
    initial: TailAssignmentResult,
    flights: List[FlightLeg],
    aircraft: List[AssignableAircraft],
    config: EngineConfig,
    sa_config: SAConfig = SA_PRESETS["normal"],
    on_progress: Optional[Callable[[SAProgress], None]] = None,
    token: Optional[CancellationToken] = None,
    seed: Optional[int] = None
) -> RefinementResult:
    """Run one refinement synchronously."""
    refiner = SimulatedAnnealingRefiner(flights, aircraft, config, sa_config, seed=seed)
    return refiner.refine(initial, on_progress=on_progress, token=token)


class RefinementHandle:
    """A refinement running in the background."""

    def __init__(self, future: Future, token: CancellationToken):
        self.future = future
        self.token = token

    def cancel(self) -> None:
        self.token.cancel()

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> RefinementResult:
        return self.future.result(timeout=timeout)


class RefinementRunner:
    """
    Runs refinements off the caller's thread, one at a time.

    Starting a new refinement cancels the previous one.
    """

    def __init__(self):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="refiner")
        self._current: Optional[RefinementHandle] = None
        self._lock = threading.Lock()

    def start(
        self,
        initial: TailAssignmentResult,
        flights: List[FlightLeg],
        aircraft: List[AssignableAircraft],
        config: EngineConfig,
        sa_config: SAConfig = SA_PRESETS["normal"],
        on_progress: Optional[Callable[[SAProgress], None]] = None,
        seed: Optional[int] = None
    ) -> RefinementHandle:
        with self._lock:
            if self._current is not None and not self._current.done():
                logger.info("Cancelling previous refinement")
                self._current.cancel()

            token = CancellationToken()
            future = self._executor.submit(
                refine_assignment,
                initial, flights, aircraft, config, sa_config,
                on_progress, token, seed
            )
            self._current = RefinementHandle(future, token)
            return self._current

    @property
    def current(self) -> Optional[RefinementHandle]:
        return self._current

    def shutdown(self) -> None:
        if self._current is not None:
            self._current.cancel()
        self._executor.shutdown(wait=True)
