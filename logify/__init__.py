"""
Logify: núcleo de auditoría (construcción de eventos, diffs, coalescing,
procesamiento diferido y persistencia transaccional).
"""

__version__ = "0.1.0"
