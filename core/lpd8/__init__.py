"""core/lpd8 — Pure decoding of Akai LPD8 MIDI messages.

No I/O: the MIDI port itself lives in ingestion/lpd8_device.py.
"""
