"""Test package for the number listening drill.

Core tests drive the session engine with a fake clock and a fake speaker.
UI tests run headlessly using pygame's dummy video driver so no real window
is opened. Run ``pytest`` from the project root.
"""
