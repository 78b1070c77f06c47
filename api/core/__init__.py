"""
Pieces every feature package imports: the query gateway (`db`), environment
settings and the error types. Feature SQL stays in its own package.
"""
