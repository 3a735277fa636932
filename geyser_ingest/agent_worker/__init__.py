"""
Agent worker package — 24/7 orchestration of the stream sessions.

ReconnectSupervisor runs one session after another with exponential backoff;
runner.run_agent wires transport, storage and signals for the CLI.
"""

from geyser_ingest.agent_worker.backoff import BackoffPolicy, RetryState
from geyser_ingest.agent_worker.supervisor import ReconnectSupervisor

__all__ = ["BackoffPolicy", "ReconnectSupervisor", "RetryState"]
