"""
LPD8 → OBS controller package.

Architecture:
    config.py       — mapping file schema (pydantic) + runtime settings
    scene_cache.py  — snapshot of the live scene's items
    dispatcher.py   — Action → RemoteSession calls
    loop.py         — event loop reconciling LPD8 events and OBS notifications
    logs.py         — logging setup (stderr)
    server.py       — CLI entrypoint
"""
