"""Exact solver backends for tail assignment."""

from assignment.solver.base import (
    SolverError,
    SolverCancelled,
    SolverStatus,
    SolverRequest,
    SolverResponse,
    MIPConfig,
    MIP_PRESETS,
    get_mip_preset,
    build_request,
    response_to_result,
)
from assignment.solver.remote import RemoteSolverClient, SolverApiConfig
from assignment.solver.local_mip import LocalMIPSolver

__all__ = [
    "SolverError",
    "SolverCancelled",
    "SolverStatus",
    "SolverRequest",
    "SolverResponse",
    "MIPConfig",
    "MIP_PRESETS",
    "get_mip_preset",
    "build_request",
    "response_to_result",
    "RemoteSolverClient",
    "SolverApiConfig",
    "LocalMIPSolver",
]
