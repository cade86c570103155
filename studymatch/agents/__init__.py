"""Opener generation: LLM routing and the icebreaker pipeline"""
