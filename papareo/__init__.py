"""Papa Reo API client: Python binding for the Papa Reo speech-recognition service.

WHY: Papa Reo transcribes te reo Māori and bilingual English/Māori audio
through a web API. Short utterances are transcribed synchronously; long
recordings go through a submit / poll / download task workflow that most
callers should not have to hand-roll.

HOW: papareo.api holds the async HTTP client and its typed errors,
papareo.core holds helpers for the WebVTT artifacts the API produces,
and papareo.cli exposes everything on the command line.

RULES:
- All HTTP calls go through papareo.api.PapaReoClient
- At most one long-recording task is in flight per client instance
"""

__version__ = "0.1.0"
