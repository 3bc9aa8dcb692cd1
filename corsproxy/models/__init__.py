"""Data contracts shared by the guard stages and the response writer.

  - decision.py : GuardDecision, RejectReason, TargetRequest, UpstreamOutcome
  - responses.py: JSON error envelopes and the informational root payload
"""
