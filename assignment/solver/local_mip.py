"""In-process exact tail assignment with PuLP (CBC)."""

from typing import Dict, List, Optional, Tuple
import logging
import time

import networkx as nx
import pulp

from models import FlightLeg, AssignableAircraft, CriteriaType
from models.solution import ChainBreak
from assignment.config import EngineConfig, FAMILY_SUB_COST
from assignment.conflicts import find_chain_breaks
from assignment.refiner import CancellationToken
from assignment.rules import evaluate_rules
from assignment.solver.base import (
    SolverCancelled,
    SolverRequest,
    SolverResponse,
    SolverStatus,
)

logger = logging.getLogger(__name__)

MAX_VARIABLES = 200000
MAX_CONSTRAINTS = 500000
DEFAULT_GROUP_TAT_MINUTES = 30

_SOLUTION_STATUS = {
    pulp.LpSolutionOptimal: SolverStatus.OPTIMAL,
    pulp.LpSolutionIntegerFeasible: SolverStatus.FEASIBLE,
    pulp.LpSolutionInfeasible: SolverStatus.INFEASIBLE,
}


class LocalMIPSolver:
    """
    Exact assignment model solved locally.

    Variables:
        x[f, a]: flight f flown by tail a (eligible, non-pinned pairs only)
        s[f]: flight f left in overflow
        y[f, g, a]: tail a flies f then its nearest successor g with a station mismatch

    Pinned flights are fixed input: they occupy their tail, and any pair that
    would clash with a pin or break a hard rule gets no variable at all.
    No-overlap constraints come from the maximal cliques of each group's
    conflict graph, where two flights conflict when they overlap once padded
    by the group's smallest TAT.

    Rules are evaluated per (flight, tail) pair with no rotation around it,
    so ``daily_block_time`` rules, which depend on the rest of the tail's
    day, are left out of the model and are neither enforced nor priced here.
    """

    def __init__(
        self,
        config: EngineConfig,
        max_variables: int = MAX_VARIABLES,
        max_constraints: int = MAX_CONSTRAINTS
    ):
        self.config = config
        self.max_variables = max_variables
        self.max_constraints = max_constraints
        self.rules = tuple(
            r for r in config.rules if r.criteria_type != CriteriaType.DAILY_BLOCK_TIME
        )
        if len(self.rules) < len(config.rules):
            logger.info(
                f"Skipping {len(config.rules) - len(self.rules)} daily block time rules "
                f"in the local MIP model"
            )

    def _group_tat(self, flights: List[FlightLeg], request: SolverRequest) -> int:
        values = [
            request.tat_minutes[f.aircraft_type]
            for f in flights if f.aircraft_type in request.tat_minutes
        ]
        return min(values) if values else DEFAULT_GROUP_TAT_MINUTES

    def _conflict_graph(self, flights: List[FlightLeg], tat: int) -> nx.Graph:
        """Flights that cannot share a tail, by index."""
        graph = nx.Graph()
        ordered = sorted(range(len(flights)), key=lambda i: flights[i].start)
        for pos, i in enumerate(ordered):
            graph.add_node(i)
            for j in ordered[pos + 1:]:
                if flights[j].start >= flights[i].end + tat:
                    break
                graph.add_edge(i, j)
        return graph

    def _nearest_successors(self, flights: List[FlightLeg], tat: int) -> List[Tuple[int, int]]:
        """(i, j) where j is the first flight a tail could fly after i, stations differing."""
        pairs = []
        ordered = sorted(range(len(flights)), key=lambda i: flights[i].start)
        for pos, i in enumerate(ordered):
            for j in ordered[pos + 1:]:
                if flights[j].start >= flights[i].end + tat:
                    if flights[i].arr_station != flights[j].dep_station:
                        pairs.append((i, j))
                    break
        return pairs

    def _eligible(self, flight: FlightLeg, aircraft: List[AssignableAircraft]) -> List[int]:
        return [
            a for a, ac in enumerate(aircraft)
            if self.config.can_operate(flight.aircraft_type, ac.aircraft_type)
        ]

    def solve(
        self,
        request: SolverRequest,
        token: Optional[CancellationToken] = None
    ) -> SolverResponse:
        """
        Build and solve the model under the request's time limit and gap.

        CBC cannot be interrupted; the token is checked before the solve
        starts and again when it returns.

        Raises:
            SolverCancelled: If the token fired
        """
        start_time = time.time()

        def elapsed_ms() -> float:
            return (time.time() - start_time) * 1000

        if token is not None and token.cancelled:
            raise SolverCancelled("Solve cancelled before start")

        flights = request.flights
        aircraft = request.aircraft
        reg_index = {ac.registration: a for a, ac in enumerate(aircraft)}

        free = [i for i, f in enumerate(flights) if not f.is_pinned]
        if not free:
            return SolverResponse(
                status=SolverStatus.OPTIMAL,
                assignments={str(f.key): f.pinned_registration for f in flights},
                elapsed_ms=elapsed_ms(),
                message="All flights pinned",
            )

        pinned_by_tail: Dict[int, List[FlightLeg]] = {}
        for f in flights:
            if f.is_pinned and f.pinned_registration in reg_index:
                pinned_by_tail.setdefault(reg_index[f.pinned_registration], []).append(f)

        # Eligible (flight, tail) pairs, minus hard rules and pin clashes
        pairs: Dict[int, List[int]] = {}
        for i in free:
            flight = flights[i]
            tat = request.tat_minutes.get(flight.aircraft_type, 0)
            allowed = []
            for a in self._eligible(flight, aircraft):
                if any(
                    p.start < flight.end + tat and flight.start < p.end + tat
                    for p in pinned_by_tail.get(a, [])
                ):
                    continue
                if not evaluate_rules(
                    flight, aircraft[a], self.rules,
                    type_families=self.config.type_families
                ).allowed:
                    continue
                allowed.append(a)
            pairs[i] = allowed

        groups: Dict[str, List[int]] = {}
        for i in free:
            groups.setdefault(self.config.group_key(flights[i].aircraft_type), []).append(i)

        cliques: List[List[int]] = []
        successors: List[Tuple[int, int]] = []
        for members in groups.values():
            group_flights = [flights[i] for i in members]
            tat = self._group_tat(group_flights, request)
            graph = self._conflict_graph(group_flights, tat)
            cliques.extend(
                [members[k] for k in clique]
                for clique in nx.find_cliques(graph) if len(clique) > 1
            )
            successors.extend(
                (members[i], members[j])
                for i, j in self._nearest_successors(group_flights, tat)
            )

        # Size guard before building anything
        n_x = sum(len(tails) for tails in pairs.values())
        n_chain = sum(len(set(pairs[i]) & set(pairs[j])) for i, j in successors)
        n_vars = n_x + len(free) + n_chain
        n_cons = len(free) + n_chain + sum(
            len(set().union(*(pairs[i] for i in clique))) for clique in cliques
        )
        if n_vars > self.max_variables or n_cons > self.max_constraints:
            message = (
                f"Model too large ({n_vars:,} variables, {n_cons:,} constraints); "
                f"reduce the date range or use the heuristic engine"
            )
            logger.warning(message)
            return SolverResponse.error(
                request, message,
                total_variables=n_vars, total_constraints=n_cons, elapsed_ms=elapsed_ms()
            )

        model = pulp.LpProblem("TailAssignment", pulp.LpMinimize)
        x: Dict[Tuple[int, int], pulp.LpVariable] = {
            (i, a): pulp.LpVariable(f"x_{i}_{a}", cat=pulp.LpBinary)
            for i, tails in pairs.items() for a in tails
        }
        s = {i: pulp.LpVariable(f"s_{i}", cat=pulp.LpBinary) for i in free}
        y: Dict[Tuple[int, int, int], pulp.LpVariable] = {}
        for i, j in successors:
            for a in set(pairs[i]) & set(pairs[j]):
                y[(i, j, a)] = pulp.LpVariable(f"y_{i}_{j}_{a}", cat=pulp.LpBinary)

        objective = [request.overflow_cost * s[i] for i in free]
        for (i, a), var in x.items():
            flight = flights[i]
            cost = evaluate_rules(
                flight, aircraft[a], self.rules,
                type_families=self.config.type_families
            ).total_penalty
            if aircraft[a].aircraft_type != flight.aircraft_type:
                cost += FAMILY_SUB_COST
            if cost:
                objective.append(cost * var)
        objective.extend(request.chain_break_cost * var for var in y.values())
        model += pulp.lpSum(objective), "TotalCost"

        for i in free:
            model += (
                pulp.lpSum(x[(i, a)] for a in pairs[i]) + s[i] == 1,
                f"Cover_{i}"
            )

        for c, clique in enumerate(cliques):
            tails = set().union(*(pairs[i] for i in clique))
            for a in tails:
                members = [x[(i, a)] for i in clique if (i, a) in x]
                if len(members) > 1:
                    model += pulp.lpSum(members) <= 1, f"NoOverlap_{c}_{a}"

        for (i, j, a), var in y.items():
            model += var >= x[(i, a)] + x[(j, a)] - 1, f"Chain_{i}_{j}_{a}"

        logger.info(
            f"Solving MIP: {len(model.variables())} variables, "
            f"{len(model.constraints)} constraints, "
            f"limit {request.time_limit_seconds}s gap {request.mip_gap}"
        )
        model.solve(pulp.PULP_CBC_CMD(
            msg=0,
            timeLimit=request.time_limit_seconds,
            gapRel=request.mip_gap
        ))

        if token is not None and token.cancelled:
            raise SolverCancelled("Solve cancelled; discarding solution")

        status = _SOLUTION_STATUS.get(model.sol_status, SolverStatus.ERROR)
        if not status.has_solution:
            return SolverResponse(
                status=status,
                overflow=[str(f.key) for f in flights],
                total_variables=len(model.variables()),
                total_constraints=len(model.constraints),
                elapsed_ms=elapsed_ms(),
                message=f"CBC status {pulp.LpStatus[model.status]}",
            )

        assignments: Dict[str, str] = {}
        for f in flights:
            if f.is_pinned:
                assignments[str(f.key)] = f.pinned_registration
        for (i, a), var in x.items():
            if (pulp.value(var) or 0) > 0.5:
                assignments[str(flights[i].key)] = aircraft[a].registration

        chain_breaks: List[ChainBreak] = find_chain_breaks(
            {f.key: assignments[str(f.key)] for f in flights if str(f.key) in assignments},
            flights
        )

        response = SolverResponse(
            status=status,
            assignments=assignments,
            overflow=[str(f.key) for f in flights if str(f.key) not in assignments],
            chain_breaks=[
                {"flightId": str(cb.key), "prevArr": cb.prev_arr, "nextDep": cb.next_dep}
                for cb in chain_breaks
            ],
            objective_value=pulp.value(model.objective) or 0.0,
            total_variables=len(model.variables()),
            total_constraints=len(model.constraints),
            elapsed_ms=elapsed_ms(),
        )
        logger.info(
            f"MIP {status.value}: objective {response.objective_value:.0f}, "
            f"{len(response.overflow)} overflow in {response.elapsed_ms:.0f} ms"
        )
        return response
