"""
Sara - agent orchestration and live progress streaming.

Runs one user request through either a single reasoning stage or the
four-stage researcher/analyst/critic/synthesizer pipeline, reporting
per-agent progress while the answer is produced.
"""

__version__ = "0.3.0"
