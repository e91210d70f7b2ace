"""
The Supervisor package.
Manages the lifecycle of the supervised server process.

This package contains the ProcessSupervisor class and its helper modules,
which together handle launching, stopping and restarting the one child
process devloop owns.
"""
from .supervisor import ProcessSupervisor, SupervisorState

__all__ = ['ProcessSupervisor', 'SupervisorState']
