"""Data models shared by the matching pipeline"""
