"""HTTP client for the hosted exact tail-assignment solver."""

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging
import os

import requests

from assignment.refiner import CancellationToken
from assignment.solver.base import SolverCancelled, SolverError, SolverRequest, SolverResponse

logger = logging.getLogger(__name__)

SOLVER_URL_ENV = "MIP_SOLVER_URL"
EXTRA_TIMEOUT_SECONDS = 60
POLL_INTERVAL_SECONDS = 0.1


@dataclass(frozen=True)
class SolverApiConfig:
    """Configuration for issuing requests to the solver service."""

    base_url: str
    extra_timeout_seconds: float = EXTRA_TIMEOUT_SECONDS
    verify_ssl: bool = True
    extra_headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> 'SolverApiConfig':
        """
        Read the service URL from ``MIP_SOLVER_URL``.

        Raises:
            SolverError: If the variable is unset
        """
        url = os.environ.get(SOLVER_URL_ENV, "").strip()
        if not url:
            raise SolverError(f"{SOLVER_URL_ENV} not configured in environment")
        return cls(base_url=url)

    @property
    def solve_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/solve"

    def build_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        headers.update(self.extra_headers)
        return headers

    def timeout_for(self, request: SolverRequest) -> float:
        return request.time_limit_seconds + self.extra_timeout_seconds


class RemoteSolverClient:
    """
    Posts a SolverRequest to ``{base_url}/solve`` and parses the reply.

    Transport failures, non-2xx statuses and malformed bodies all surface as
    SolverError. The HTTP timeout is the request's time limit plus a fixed
    margin.
    """

    def __init__(self, config: SolverApiConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session

    def _post(self, payload: Dict[str, Any], timeout: float) -> Any:
        http = self.session or requests.Session()
        response = http.post(
            self.config.solve_url,
            json=payload,
            headers=self.config.build_headers(),
            timeout=timeout,
            verify=self.config.verify_ssl,
        )
        response.raise_for_status()
        return response.json()

    def solve(
        self,
        request: SolverRequest,
        token: Optional[CancellationToken] = None
    ) -> SolverResponse:
        """
        Run one remote solve.

        Args:
            request: Serialized engine input
            token: Optional cancellation token, polled while waiting

        Returns:
            Parsed SolverResponse (possibly with an Infeasible/Error status)

        Raises:
            SolverCancelled: If the token fires before the reply arrives
            SolverError: On transport or payload errors
        """
        timeout = self.config.timeout_for(request)
        payload = request.to_payload()
        logger.info(
            f"Posting {len(request.flights)} flights / {len(request.aircraft)} aircraft "
            f"to {self.config.solve_url} (timeout {timeout:.0f}s)"
        )

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="solver-http")
        try:
            future = executor.submit(self._post, payload, timeout)
            while True:
                if token is not None and token.cancelled:
                    future.cancel()
                    raise SolverCancelled("Solver request cancelled")
                try:
                    data = future.result(timeout=POLL_INTERVAL_SECONDS)
                    break
                except FutureTimeout:
                    continue
        except requests.Timeout as e:
            raise SolverError(f"Solver timed out after {timeout:.0f}s") from e
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            body = e.response.text if e.response is not None else ""
            raise SolverError(f"Solver returned HTTP {status}: {body}") from e
        except requests.RequestException as e:
            raise SolverError(f"Failed to reach solver: {e}") from e
        except ValueError as e:
            raise SolverError(f"Solver returned invalid JSON: {e}") from e
        finally:
            executor.shutdown(wait=False)

        response = SolverResponse.from_payload(data)
        logger.info(
            f"Solver status {response.status.value}: {len(response.assignments)} assigned, "
            f"{len(response.overflow)} overflow in {response.elapsed_ms:.0f} ms"
        )
        return response
