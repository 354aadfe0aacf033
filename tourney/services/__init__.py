"""Operation services that report progress through phase callbacks."""

from .simulated import SimulatedOperation, SimulatedRefresher, build_simulated_services

__all__ = [
    "SimulatedOperation",
    "SimulatedRefresher",
    "build_simulated_services",
]
