"""HTTP surface: cycle trigger and health check"""
