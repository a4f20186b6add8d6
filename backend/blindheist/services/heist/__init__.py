"""Heist domain services: layout catalogue, match state, simulation, scoring, timers.

Pure(ish) game mechanics, imported by the room coordinator and socket
handlers and kept free of transport concerns.
"""
