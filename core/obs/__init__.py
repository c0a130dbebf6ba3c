"""core/obs — Pure OBS session model.

Value types and the :class:`~core.obs.protocol.RemoteSession` contract.
The obs-websocket client that talks to a running OBS lives in
ingestion/obs_bridge.py.
"""
