"""Speech synthesis providers and failover."""

from .providers import OpenAISpeechProvider, SpeechProvider, VonageSpeechProvider
from .synthesizer import FailoverSpeechSynthesizer, SpeechSynthesizer
from .voices import resolve_openai_voice, resolve_vonage_voice

__all__ = [
    "FailoverSpeechSynthesizer",
    "OpenAISpeechProvider",
    "SpeechProvider",
    "SpeechSynthesizer",
    "VonageSpeechProvider",
    "resolve_openai_voice",
    "resolve_vonage_voice",
]
