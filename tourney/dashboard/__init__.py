"""
Dashboard core: shared state, operation tracking, auto-train coordination,
command dispatch and render scheduling.
"""
