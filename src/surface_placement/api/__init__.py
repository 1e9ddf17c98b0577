"""
HTTP and WebSocket API
"""
