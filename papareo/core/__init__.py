"""Helpers for the artifacts the Papa Reo API produces.

WHY: The client returns raw WebVTT bytes; reading or validating them is a
separate concern from talking to the API.

HOW: vtt.py checks the WEBVTT marker and parses cue blocks.

RULES:
- Nothing here performs HTTP requests
"""
