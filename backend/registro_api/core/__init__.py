"""
Application core: lifespan, composition root, CORS and exception handlers.
"""
