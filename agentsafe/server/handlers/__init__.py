"""
HTTP request handlers for the Agent-SAFE Grid server.
"""
