"""Per-pair pipeline stages and the cycle orchestrator"""
