"""
VoxGuard Compliance Engine Service.

Evaluates streaming and batch transcript segments against pattern-based
compliance rules, materializes violations as alerts with session
rollups, and reconciles real-time segments with a diarized batch pass.
"""
