"""
Agents package.

Client-side view of the agents taking part in a run:
- PhaseAnnouncer: which agents participate, in which order
- AgentStateStore: one state machine per agent, guarded by the RunToken
- ProgressSimulator: staged progress while an opaque request is in flight
"""

from sara.agents.phases import AGENT_META, AGENT_ORDER, AgentMeta, PhaseAnnouncer
from sara.agents.simulator import ProgressSimulator
from sara.agents.store import TRANSITIONS, AgentStateStore, ProgressSink

__all__ = [
    "AGENT_META",
    "AGENT_ORDER",
    "AgentMeta",
    "AgentStateStore",
    "PhaseAnnouncer",
    "ProgressSimulator",
    "ProgressSink",
    "TRANSITIONS",
]
