"""Infrastructure layer — resilience and observability for the controller.

Modules:
    retry       Exponential backoff retry decorator for connection setup.
    metrics     Prometheus metrics registry.
"""
