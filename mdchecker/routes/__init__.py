"""
Routes package - HTTP query API blueprints
"""
