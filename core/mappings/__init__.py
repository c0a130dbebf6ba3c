"""core/mappings — Declarative LPD8 → OBS action mappings.

Pure module: actions are immutable values, the mapping table is built once
and only read afterwards.  Loading the mapping file lives in controller/config.py.
"""
